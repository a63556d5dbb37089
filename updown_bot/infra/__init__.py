from .log import get_logger, short_id
from .telemetry import RuntimeEventLogger

__all__ = ["get_logger", "short_id", "RuntimeEventLogger"]
