from __future__ import annotations

import os

# The module level engine must not create data/app.db while tests import the app
os.environ.setdefault("SQLITE_PATH", ":memory:")

from collections.abc import Callable, Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from proxyconf.config import Settings
from proxyconf.persistence import models  # noqa: F401  registers tables on Base.metadata
from proxyconf.persistence.db import Base, get_db
from proxyconf.persistence.models import SiteType
from proxyconf.persistence.repos import TargetRow

ROW_DEFAULTS: dict[str, Any] = {
    "resource_id": 1,
    "resource_name": "Example",
    "full_domain": "example.com",
    "ssl": True,
    "http": True,
    "proxy_port": None,
    "protocol": "tcp",
    "subdomain": None,
    "domain_id": 1,
    "enabled": True,
    "sticky_session": False,
    "tls_server_name": None,
    "set_host_header": None,
    "enable_proxy": True,
    "headers": None,
    "proxy_protocol": False,
    "proxy_protocol_version": 1,
    "prefer_wildcard_cert": None,
    "maintenance_mode_enabled": False,
    "maintenance_mode_type": None,
    "maintenance_title": None,
    "maintenance_message": None,
    "maintenance_estimated_time": None,
    "target_id": 1,
    "target_enabled": True,
    "ip": "10.0.0.5",
    "method": "http",
    "port": 8080,
    "internal_port": None,
    "hc_health": None,
    "path": None,
    "path_match_type": None,
    "rewrite_path": None,
    "rewrite_path_type": None,
    "priority": 100,
    "site_id": 1,
    "site_type": SiteType.LOCAL,
    "site_online": True,
    "subnet": None,
    "exit_node_id": 1,
    "domain_cert_resolver": None,
}


@pytest.fixture
def make_row() -> Callable[..., TargetRow]:
    def _make_row(**overrides: Any) -> TargetRow:
        return TargetRow(**{**ROW_DEFAULTS, **overrides})

    return _make_row


@pytest.fixture
def config() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def client(db: Session) -> Generator[TestClient, None, None]:
    from proxyconf.main import create_app

    app = create_app()

    def _get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c


@pytest.fixture
def seeded_db(db: Session) -> Session:
    """
    Two exit nodes, one domain, and resources spread over local, wireguard and newt sites.

    exit node 1: site 1 (newt, online), site 2 (wireguard, offline)
    exit node 2: site 3 (wireguard, online)
    unassigned:  site 4 (local, online)
    """
    from proxyconf.persistence.models import (
        Domain, ExitNode, HealthStatus, Resource, ResourceProtocol, Site, Target, TargetHealthCheck,
    )

    db.add_all([ExitNode(id=1, name="edge-1"), ExitNode(id=2, name="edge-2")])
    db.add_all([
        Domain(id=1, base_domain="example.com"),
        Domain(id=2, base_domain="tenant.example.net", is_namespace=True),
    ])
    db.add_all([
        Site(id=1, name="home", type=SiteType.NEWT, online=True, subnet="100.89.128.4/30", exit_node_id=1),
        Site(id=2, name="office", type=SiteType.WIREGUARD, online=False, exit_node_id=1),
        Site(id=3, name="remote", type=SiteType.WIREGUARD, online=True, exit_node_id=2),
        Site(id=4, name="local", type=SiteType.LOCAL, online=True, exit_node_id=None),
    ])
    db.add_all([
        Resource(id=1, name="App", domain_id=1, subdomain="app", full_domain="app.example.com", http=True, ssl=True),
        Resource(id=2, name="Tenant", domain_id=2, subdomain="t", full_domain="t.tenant.example.net", http=True, ssl=True),
        Resource(id=3, name="SSH", http=False, protocol=ResourceProtocol.TCP, proxy_port=2222),
        Resource(id=4, name="Off", domain_id=1, subdomain="off", full_domain="off.example.com", http=True, enabled=False),
        Resource(id=5, name="Dash", domain_id=1, subdomain="dash", full_domain="dash.example.com", http=True,
                 maintenance_title="Down for <upgrades>", maintenance_message="Back soon",
                 maintenance_estimated_time="2 hours"),
    ])
    db.add_all([
        Target(id=1, resource_id=1, site_id=1, ip="localhost", method="http", port=80, internal_port=40001, priority=100),
        Target(id=2, resource_id=1, site_id=2, ip="10.1.0.2", method="http", port=80, priority=200),
        Target(id=3, resource_id=1, site_id=1, ip="localhost", method="http", port=81, internal_port=40002, enabled=False),
        Target(id=4, resource_id=1, site_id=1, ip="localhost", method="http", port=82, internal_port=40003),
        Target(id=5, resource_id=2, site_id=1, ip="localhost", method="http", port=80, internal_port=40004),
        Target(id=6, resource_id=3, site_id=1, ip="localhost", port=22, internal_port=40005),
        Target(id=7, resource_id=4, site_id=1, ip="localhost", method="http", port=80, internal_port=40006),
        Target(id=8, resource_id=1, site_id=3, ip="10.2.0.2", method="http", port=80),
        Target(id=9, resource_id=5, site_id=4, ip="127.0.0.1", method="http", port=3000),
    ])
    db.add_all([
        TargetHealthCheck(target_id=1, hc_health=HealthStatus.HEALTHY),
        TargetHealthCheck(target_id=4, hc_health=HealthStatus.UNHEALTHY),
        TargetHealthCheck(target_id=5, hc_health=HealthStatus.UNKNOWN),
    ])
    db.commit()
    return db
