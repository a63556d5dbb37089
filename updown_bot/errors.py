from __future__ import annotations


class BotError(Exception):
    """Base error for the trading runtime."""


class ConfigError(BotError):
    """Operator supplied an invalid configuration value."""

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(", ".join(self.errors))


class GatewayInitError(BotError):
    """Exchange session could not be established; fatal for start()."""
