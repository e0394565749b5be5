from __future__ import annotations

from collections.abc import Generator

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from proxyconf.persistence.db import get_db
from proxyconf.services.groups import MaintenanceSettings
from proxyconf.services.maintenance import render_maintenance_page, should_show_maintenance
from proxyconf.web.maintenance import create_maintenance_app


class TestShouldShowMaintenance:
    def test_disabled(self) -> None:
        assert not should_show_maintenance(MaintenanceSettings(enabled=False, mode="forced"), False)

    def test_forced_ignores_health(self) -> None:
        assert should_show_maintenance(MaintenanceSettings(enabled=True, mode="forced"), True)

    def test_automatic_follows_health(self) -> None:
        settings = MaintenanceSettings(enabled=True, mode="automatic")
        assert should_show_maintenance(settings, False)
        assert not should_show_maintenance(settings, True)

    def test_unknown_mode_routes_normally(self) -> None:
        assert not should_show_maintenance(MaintenanceSettings(enabled=True, mode=None), False)


class TestRenderMaintenancePage:
    def test_defaults(self) -> None:
        html = render_maintenance_page(None, None, None)
        assert "<title>Service Temporarily Unavailable</title>" in html
        assert "Please check back soon." in html
        assert "Estimated completion" not in html

    def test_values_are_escaped(self) -> None:
        html = render_maintenance_page("<script>x</script>", "Tom & Jerry", "\"soon\"")
        assert "<script>x</script>" not in html
        assert "&lt;script&gt;x&lt;/script&gt;" in html
        assert "Tom &amp; Jerry" in html
        assert "Estimated completion" in html


def _maintenance_client(db: Session, host: str) -> TestClient:
    app = create_maintenance_app()

    def _get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _get_db
    return TestClient(app, base_url=f"http://{host}")


def test_maintenance_app_uses_resource_texts(seeded_db: Session) -> None:
    client = _maintenance_client(seeded_db, "dash.example.com:443")
    response = client.get("/some/deep/path")

    assert response.status_code == 503
    assert "Down for &lt;upgrades&gt;" in response.text
    assert "Back soon" in response.text
    assert "2 hours" in response.text


def test_maintenance_app_unknown_host(seeded_db: Session) -> None:
    response = _maintenance_client(seeded_db, "unknown.example.com").get("/")

    assert response.status_code == 503
    assert "Service Temporarily Unavailable" in response.text
