"""
Core configuration shared by all Log Sentinel services.
"""

from .config import AppConfig, Backend, StartPolicy, get_config, reload_config

__all__ = ["AppConfig", "Backend", "StartPolicy", "get_config", "reload_config"]
