from .integrations import NotionConfig, SyncConfig
from .settings import AppConfig, RuntimeConfig, Settings, load_config

__all__ = [
    "AppConfig",
    "NotionConfig",
    "RuntimeConfig",
    "Settings",
    "SyncConfig",
    "load_config",
]
