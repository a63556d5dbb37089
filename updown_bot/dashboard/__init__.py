from .server import BotManager, build_app, run_dashboard

__all__ = ["BotManager", "build_app", "run_dashboard"]
