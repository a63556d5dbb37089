from __future__ import annotations

import os
from dataclasses import dataclass, replace

SIDES = ("UP", "DOWN")
STRATEGIES = ("contrarian", "fixed")
MAX_GATE_RUN = 20


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.environ.get(name)
    if raw is None or not str(raw).strip():
        value = default
    else:
        value = int(raw)
    if min_value is not None:
        value = max(min_value, value)
    return value


def _env_float(name: str, default: float, min_value: float | None = None) -> float:
    raw = os.environ.get(name)
    if raw is None or not str(raw).strip():
        value = default
    else:
        value = float(raw)
    if min_value is not None:
        value = max(min_value, value)
    return value


def _env_str(name: str, default: str = "") -> str:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return str(raw).strip().strip('"').strip("'")


def mask_secret(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 10:
        return "***"
    return f"{value[:6]}...{value[-4:]}"


@dataclass(frozen=True)
class Settings:
    private_key: str
    funder_address: str
    signature_type: int
    chain_id: int
    clob_host: str
    gamma_api_url: str
    binance_api_url: str
    investment_amount: float
    check_interval_ms: int
    consecutive_candles: int
    trading_side: str
    strategy: str
    circuit_breaker_losses: int
    max_entry_price: float
    win_threshold: float
    resolve_grace_sec: float
    http_timeout_sec: float
    market_asset: str
    window_minutes: int
    candle_symbol: str
    dry_run: bool
    data_dir: str
    log_level: str
    control_host: str
    control_port: int
    dashboard_mode: str
    auto_start: bool

    @property
    def window_seconds(self) -> int:
        return int(self.window_minutes) * 60

    def masked_key(self) -> str:
        return mask_secret(self.private_key)

    def with_updates(self, **changes) -> "Settings":
        return replace(self, **changes)

    def public_view(self) -> dict:
        """Config as shown to operators; never contains the full key."""
        return {
            "private_key": self.masked_key(),
            "investment_amount": self.investment_amount,
            "check_interval": self.check_interval_ms,
            "signature_type": self.signature_type,
            "funder_address": self.funder_address,
            "trading_side": self.trading_side,
            "consecutive_candles": self.consecutive_candles,
            "strategy": self.strategy,
            "circuit_breaker_losses": self.circuit_breaker_losses,
            "dry_run": self.dry_run,
        }


def load_settings() -> Settings:
    return Settings(
        private_key=_env_str("PRIVATE_KEY") or _env_str("POLY_PRIVATE_KEY"),
        funder_address=_env_str("FUNDER_ADDRESS"),
        signature_type=_env_int("SIGNATURE_TYPE", 1, min_value=0),
        chain_id=_env_int("CHAIN_ID", 137),
        clob_host=_env_str("CLOB_HOST", "https://clob.polymarket.com"),
        gamma_api_url=_env_str("GAMMA_API_URL", "https://gamma-api.polymarket.com"),
        binance_api_url=_env_str("BINANCE_API_URL", "https://api.binance.com"),
        investment_amount=_env_float("INVESTMENT_AMOUNT", 10.0),
        check_interval_ms=_env_int("CHECK_INTERVAL", 5000),
        consecutive_candles=_env_int("CONSECUTIVE_CANDLES", 3),
        trading_side=_env_str("TRADING_SIDE", "UP").upper(),
        strategy=_env_str("STRATEGY", "contrarian").lower(),
        circuit_breaker_losses=_env_int("CIRCUIT_BREAKER_LOSSES", 0, min_value=0),
        max_entry_price=_env_float("MAX_ENTRY_PRICE", 0.50),
        win_threshold=_env_float("WIN_THRESHOLD", 0.99),
        resolve_grace_sec=_env_float("RESOLVE_GRACE_SEC", 5.0, min_value=0.0),
        http_timeout_sec=_env_float("HTTP_TIMEOUT_SEC", 10.0, min_value=0.5),
        market_asset=_env_str("MARKET_ASSET", "btc").lower(),
        window_minutes=_env_int("WINDOW_MINUTES", 15, min_value=1),
        candle_symbol=_env_str("CANDLE_SYMBOL", "BTCUSDT").upper(),
        dry_run=_env_bool("DRY_RUN", True),
        data_dir=_env_str("DATA_DIR", "./data"),
        log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        control_host=_env_str("CONTROL_HOST", "127.0.0.1"),
        control_port=_env_int("CONTROL_PORT", 3000, min_value=1),
        dashboard_mode=_env_str("DASHBOARD_MODE", "embedded").lower(),
        auto_start=_env_bool("AUTO_START", False),
    )


def validate_settings(settings: Settings, *, live: bool | None = None) -> list[str]:
    """Return operator-facing problems; empty list means startable."""
    live = (not settings.dry_run) if live is None else live
    errors: list[str] = []
    if live and not settings.private_key:
        errors.append("Private Key is required")
    if live and not settings.funder_address:
        errors.append("Funder Address is required")
    if not settings.investment_amount or settings.investment_amount <= 0:
        errors.append("Investment Amount must be greater than 0")
    if not settings.check_interval_ms or settings.check_interval_ms <= 0:
        errors.append("Check Interval must be greater than 0")
    if not 1 <= settings.consecutive_candles <= MAX_GATE_RUN:
        errors.append(f"Consecutive Candles Count must be between 1 and {MAX_GATE_RUN}")
    if settings.trading_side not in SIDES:
        errors.append("Trading Side must be UP or DOWN")
    if settings.strategy not in STRATEGIES:
        errors.append(f"Strategy must be one of {', '.join(STRATEGIES)}")
    if not 0.0 < settings.win_threshold <= 1.0:
        errors.append("Win Threshold must be in (0, 1]")
    if not 0.0 < settings.max_entry_price <= 1.0:
        errors.append("Max Entry Price must be in (0, 1]")
    return errors
