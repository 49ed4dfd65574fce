from .core import fetch_error_logs, fetch_folder, fetch_pattern
from .server import create_app, create_router, install_proxy_handlers

__all__ = [
    "create_app",
    "create_router",
    "fetch_error_logs",
    "fetch_folder",
    "fetch_pattern",
    "install_proxy_handlers",
]
