from .settings import GuardSettings, get_settings

__all__ = ["GuardSettings", "get_settings"]
