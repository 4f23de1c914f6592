"""Process-wide sentinel services shared by the routers."""

from __future__ import annotations

from sentinel.services import Services, build_services

_services: Services | None = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: Services | None) -> None:
    """Replace the shared services (tests point this at a temp directory)."""
    global _services
    _services = services
