from .settings import Settings, load_settings, mask_secret, validate_settings

__all__ = ["Settings", "load_settings", "mask_secret", "validate_settings"]
