"""AI Dev Team API: health check service with static API documentation."""

from .api import create_app
from .config import Settings, get_settings
from .lifecycle import LifecycleState, ProcessLifecycle
from .models import ErrorResponse, HealthResponse, ServiceInfo
from .pipeline import render_error

__version__ = "1.0.0"


__all__ = [
    "create_app",
    "Settings",
    "get_settings",
    "LifecycleState",
    "ProcessLifecycle",
    "ErrorResponse",
    "HealthResponse",
    "ServiceInfo",
    "render_error",
]
