from .errors import ConfigError
from .loader import load_config, resolve_database_path
from .models import AppConfig, DatabaseConfig, FetchConfig, SchedulerConfig

__all__ = [
    "AppConfig",
    "ConfigError",
    "DatabaseConfig",
    "FetchConfig",
    "SchedulerConfig",
    "load_config",
    "resolve_database_path",
]
