"""
Maintenance mode decision and maintenance page rendering.
"""
from pathlib import Path
from jinja2 import Environment, FileSystemLoader, select_autoescape
from proxyconf.persistence.models import MaintenanceModeType
from proxyconf.services.groups import MaintenanceSettings

DEFAULT_TITLE = "Service Temporarily Unavailable"
DEFAULT_MESSAGE = "We are currently experiencing technical difficulties. Please check back soon."

# Routers of maintenance pages must win over every path specific router
MAINTENANCE_PRIORITY = 2000

TEMPLATE_ROOT = (Path(__file__).resolve().parent.parent / "web" / "templates").resolve()

_env = Environment(loader=FileSystemLoader(TEMPLATE_ROOT), autoescape=select_autoescape(["html", "jinja2"]))


def should_show_maintenance(maintenance: MaintenanceSettings, has_healthy_servers: bool) -> bool:
    """Forced mode always shows the page, automatic mode only when no backend is eligible."""
    if not maintenance.enabled:
        return False
    if maintenance.mode == MaintenanceModeType.FORCED.value:
        return True
    if maintenance.mode == MaintenanceModeType.AUTOMATIC.value:
        return not has_healthy_servers
    return False


def render_maintenance_page(title: str | None, message: str | None, estimated_time: str | None) -> str:
    return _env.get_template("maintenance.jinja2").render(
        title=title or DEFAULT_TITLE,
        message=message or DEFAULT_MESSAGE,
        estimated_time=estimated_time or None,
    )
