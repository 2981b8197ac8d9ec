"""Droplets API - daily AI-generated creations for a shared world."""

__version__ = "1.0.0"

from .api import app, create_app  # noqa: E402
from .factory import ServiceFactory, Services, build_services  # noqa: E402
from .providers import create_image_provider  # noqa: E402

__all__ = [
    "ServiceFactory",
    "Services",
    "app",
    "build_services",
    "create_app",
    "create_image_provider",
]
