from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from aiohttp import web

from updown_bot.config import Settings, validate_settings
from updown_bot.data import HttpService, SnapshotStore
from updown_bot.errors import ConfigError, GatewayInitError
from updown_bot.infra import RuntimeEventLogger, get_logger
from updown_bot.runtime.app import build_controller
from updown_bot.runtime.controller import Controller

HTML = """<!doctype html><html><head><meta charset='utf-8'><title>Up/Down Bot</title></head>
<body style='font-family:system-ui;background:#060b16;color:#dbe4ff;padding:16px'>
<h2>Up/Down Martingale Bot</h2>
<button onclick="post('/api/start')">Start</button> <button onclick="post('/api/stop')">Stop</button>
<pre id='out'>loading...</pre>
<script>
async function post(p){const r=await fetch(p,{method:'POST',headers:{'Content-Type':'application/json'},body:'{}'});tick();return r.json();}
async function tick(){
  try{
    const r=await fetch('/api/status',{cache:'no-store'});
    const j=await r.json();
    document.getElementById('out').textContent=JSON.stringify(j,null,2);
  }catch(e){document.getElementById('out').textContent='dashboard error: '+e;}
}
setInterval(tick,2000);tick();
</script>
</body></html>"""

# request field -> (settings field, converter); camelCase kept for the browser client
LOG_KEY = web.AppKey("log", logging.Logger)

CONFIG_FIELDS: dict[str, tuple[str, Callable]] = {
    "private_key": ("private_key", str),
    "privateKey": ("private_key", str),
    "investment_amount": ("investment_amount", float),
    "investmentAmount": ("investment_amount", float),
    "check_interval": ("check_interval_ms", int),
    "checkInterval": ("check_interval_ms", int),
    "signature_type": ("signature_type", int),
    "signatureType": ("signature_type", int),
    "funder_address": ("funder_address", str),
    "funderAddress": ("funder_address", str),
    "trading_side": ("trading_side", lambda v: str(v).strip().upper()),
    "tradingSide": ("trading_side", lambda v: str(v).strip().upper()),
    "consecutive_candles": ("consecutive_candles", int),
    "consecutiveCandlesCount": ("consecutive_candles", int),
    "strategy": ("strategy", lambda v: str(v).strip().lower()),
}

# applied only when the next controller is built
RESTART_ONLY_FIELDS = ("strategy", "private_key", "funder_address", "signature_type")


def parse_config_body(body: dict) -> dict:
    if not isinstance(body, dict):
        raise ConfigError("request body must be a JSON object")
    changes = {}
    errors = []
    for key, value in body.items():
        spec = CONFIG_FIELDS.get(key)
        if spec is None or value is None:
            continue
        field_name, conv = spec
        try:
            changes[field_name] = conv(value)
        except (TypeError, ValueError):
            errors.append(f"{key} has an invalid value")
    if errors:
        raise ConfigError(errors)
    return changes


def idle_status(settings: Settings) -> dict:
    return {
        "running": False,
        "last_tick": "",
        "current_stake_amount": 0,
        "initial_amount": 0,
        "win_count": 0,
        "loss_count": 0,
        "consecutive_losses": 0,
        "last_result": None,
        "last_market_id": None,
        "history": [],
        "tracked_market_count": 0,
        "trading_side": settings.trading_side,
        "gate_run_length": settings.consecutive_candles,
        "strategy": settings.strategy,
        "awaiting_gate_clear": False,
    }


class BotManager:
    """Owns the operator config and at most one running controller."""

    def __init__(self, settings: Settings, *, log=None, controller_factory=build_controller, http=None):
        self.settings = settings
        self.log = log or get_logger("updown-bot.control", settings.log_level)
        self.events = RuntimeEventLogger(settings.data_dir)
        self.store = SnapshotStore(settings.data_dir)
        self.http = http or HttpService(timeout=settings.http_timeout_sec, log=self.log)
        self._factory = controller_factory
        self.controller: Controller | None = None
        self._start_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self.controller is not None and self.controller.running

    def status(self) -> dict:
        if self.controller is None:
            return idle_status(self.settings)
        return self.controller.status()

    def config(self) -> dict:
        view = self.settings.public_view()
        if self.controller is not None:
            view["trading_side"] = self.controller.engine.state.side
        return view

    def update_config(self, body: dict) -> dict:
        changes = parse_config_body(body)
        if self.running:
            blocked = sorted(f for f in changes if f in RESTART_ONLY_FIELDS)
            if blocked:
                raise ConfigError([f"{f} cannot be changed while the bot is running" for f in blocked])
        candidate = self.settings.with_updates(**changes)
        errors = validate_settings(candidate, live=False)
        if errors:
            raise ConfigError(errors)
        self.settings = candidate

        if self.running:
            engine = self.controller.engine
            if "trading_side" in changes:
                engine.set_trading_side(candidate.trading_side)
            if "consecutive_candles" in changes:
                engine.set_gate_run_length(candidate.consecutive_candles)
            if "investment_amount" in changes:
                engine.set_initial_amount(candidate.investment_amount, running=True)
            if "check_interval_ms" in changes:
                self.controller.set_interval(candidate.check_interval_ms)
        self.log.info("config updated fields=%s", sorted(changes))
        return self.config()

    async def start(self, overrides: dict | None = None) -> None:
        async with self._start_lock:
            if self.running:
                raise ConfigError("Bot is already running")
            candidate = self.settings
            if overrides:
                candidate = candidate.with_updates(**parse_config_body(overrides))
            errors = validate_settings(candidate)
            if errors:
                raise ConfigError(errors)
            controller = self._factory(candidate, http=self.http, events=self.events, store=self.store)
            await controller.start()
            self.settings = candidate
            self.controller = controller

    def stop(self) -> None:
        if not self.running:
            raise ConfigError("Bot is not running")
        self.controller.stop()

    async def shutdown(self) -> None:
        if self.running:
            self.controller.stop()
        await self.http.close()


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ConfigError as exc:
        return web.json_response({"error": str(exc), "errors": exc.errors}, status=400)
    except GatewayInitError as exc:
        return web.json_response({"error": str(exc)}, status=502)
    except Exception as exc:
        request.app[LOG_KEY].exception("request failed path=%s", request.path)
        return web.json_response({"error": str(exc) or exc.__class__.__name__}, status=500)


async def _json_body(request: web.Request) -> dict:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except ValueError as exc:
        raise ConfigError("request body is not valid JSON") from exc
    return body or {}


def build_app(manager: BotManager) -> web.Application:
    async def handle_html(_req: web.Request) -> web.Response:
        return web.Response(text=HTML, content_type="text/html")

    async def handle_status(_req: web.Request) -> web.Response:
        return web.json_response(manager.status(), headers={"Cache-Control": "no-store"})

    async def handle_get_config(_req: web.Request) -> web.Response:
        return web.json_response(manager.config())

    async def handle_post_config(req: web.Request) -> web.Response:
        cfg = manager.update_config(await _json_body(req))
        return web.json_response({"success": True, "message": "Config updated", "config": cfg})

    async def handle_start(req: web.Request) -> web.Response:
        await manager.start(await _json_body(req))
        return web.json_response({"success": True, "message": "Bot started"})

    async def handle_stop(_req: web.Request) -> web.Response:
        manager.stop()
        return web.json_response({"success": True, "message": "Bot stopped"})

    async def handle_events(req: web.Request) -> web.Response:
        try:
            n = int(req.query.get("n", "20"))
        except ValueError:
            n = 20
        return web.json_response({"events": manager.events.tail(max(1, min(n, 500)))})

    app = web.Application(middlewares=[error_middleware])
    app[LOG_KEY] = manager.log
    app.router.add_get("/", handle_html)
    app.router.add_get("/api/status", handle_status)
    app.router.add_get("/api/config", handle_get_config)
    app.router.add_post("/api/config", handle_post_config)
    app.router.add_post("/api/start", handle_start)
    app.router.add_post("/api/stop", handle_stop)
    app.router.add_get("/api/events", handle_events)
    return app


def build_snapshot_app(data_dir: str, log) -> web.Application:
    """Read-only status page for a bot running in another process."""
    store = SnapshotStore(data_dir)

    async def handle_html(_req: web.Request) -> web.Response:
        return web.Response(text=HTML, content_type="text/html")

    async def handle_status(_req: web.Request) -> web.Response:
        return web.json_response(store.read(), headers={"Cache-Control": "no-store"})

    app = web.Application(middlewares=[error_middleware])
    app[LOG_KEY] = log
    app.router.add_get("/", handle_html)
    app.router.add_get("/api/status", handle_status)
    return app


async def run_dashboard(manager: BotManager, *, host: str, port: int) -> None:
    log = manager.log
    if manager.settings.dashboard_mode == "external":
        app = build_snapshot_app(manager.settings.data_dir, log)
    else:
        app = build_app(manager)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    log.info("control surface running on http://%s:%s", host, port)

    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await runner.cleanup()
