"""
SQLAlchemy database models for the Proxy Route Configurator.
Defines the resources, targets, sites and health state the routing configuration is built from.
"""
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import DateTime, String, Integer, Boolean, ForeignKey, Text, Enum
from proxyconf.persistence.db import Base
import enum

class SiteType(str, enum.Enum):
    """How the proxy reaches the targets hosted on a site."""
    LOCAL = "local"          # Reachable directly from the exit node
    WIREGUARD = "wireguard"  # Reachable over a plain WireGuard peer
    NEWT = "newt"            # Reachable through a newt tunnel subnet

class ResourceProtocol(str, enum.Enum):
    """Transport protocol of a raw (non-HTTP) resource."""
    TCP = "tcp"
    UDP = "udp"

class MaintenanceModeType(str, enum.Enum):
    """When the maintenance page replaces normal routing."""
    FORCED = "forced"        # Always
    AUTOMATIC = "automatic"  # Only while no backend is eligible

class HealthStatus(str, enum.Enum):
    """Latest result reported by the health checker."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class ExitNode(Base):
    """A data plane instance pulling its routing configuration."""
    __tablename__ = "exit_nodes"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(64), unique=True)
    last_config_pull_time: Mapped[datetime | None] = mapped_column(DateTime)  # Last config fetch

class Domain(Base):
    """A base domain resources are published under."""
    __tablename__ = "domains"
    id: Mapped[int] = mapped_column(primary_key=True)
    base_domain: Mapped[str] = mapped_column(String(255), unique=True)  # e.g. "example.com"
    cert_resolver: Mapped[str | None] = mapped_column(String(64))  # Overrides the global resolver
    is_namespace: Mapped[bool] = mapped_column(Boolean, default=False)  # Shared provider-owned domain

class Site(Base):
    """A network location hosting backend targets."""
    __tablename__ = "sites"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(64))
    type: Mapped[SiteType] = mapped_column(Enum(SiteType))
    online: Mapped[bool] = mapped_column(Boolean, default=False)
    subnet: Mapped[str | None] = mapped_column(String(64))  # Tunnel subnet, newt sites only
    exit_node_id: Mapped[int | None] = mapped_column(ForeignKey("exit_nodes.id"))

    exit_node: Mapped[ExitNode | None] = relationship(backref="sites", lazy="joined")

class Resource(Base):
    """A routable unit: an HTTP host or a raw TCP/UDP port."""
    __tablename__ = "resources"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    domain_id: Mapped[int | None] = mapped_column(ForeignKey("domains.id"))
    subdomain: Mapped[str | None] = mapped_column(String(255))
    full_domain: Mapped[str | None] = mapped_column(String(255))
    http: Mapped[bool | None] = mapped_column(Boolean, default=True)
    ssl: Mapped[bool] = mapped_column(Boolean, default=False)
    protocol: Mapped[ResourceProtocol] = mapped_column(Enum(ResourceProtocol), default=ResourceProtocol.TCP)
    proxy_port: Mapped[int | None] = mapped_column(Integer)  # Raw resources only
    enable_proxy: Mapped[bool] = mapped_column(Boolean, default=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    sticky_session: Mapped[bool] = mapped_column(Boolean, default=False)
    tls_server_name: Mapped[str | None] = mapped_column(String(255))
    set_host_header: Mapped[str | None] = mapped_column(String(255))
    headers: Mapped[str | None] = mapped_column(Text)  # JSON list of {"name", "value"}
    proxy_protocol: Mapped[bool] = mapped_column(Boolean, default=False)
    proxy_protocol_version: Mapped[int | None] = mapped_column(Integer, default=1)
    prefer_wildcard_cert: Mapped[bool | None] = mapped_column(Boolean)  # None falls back to the global setting

    maintenance_mode_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    maintenance_mode_type: Mapped[MaintenanceModeType | None] = mapped_column(Enum(MaintenanceModeType), default=MaintenanceModeType.AUTOMATIC)
    maintenance_title: Mapped[str | None] = mapped_column(String(255))
    maintenance_message: Mapped[str | None] = mapped_column(String(2000))
    maintenance_estimated_time: Mapped[str | None] = mapped_column(String(100))

    domain: Mapped[Domain | None] = relationship(backref="resources", lazy="joined")

class Target(Base):
    """A backend endpoint of a resource, hosted on one site."""
    __tablename__ = "targets"
    id: Mapped[int] = mapped_column(primary_key=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id"))
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id"))
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    ip: Mapped[str | None] = mapped_column(String(255))
    method: Mapped[str | None] = mapped_column(String(16))  # Scheme used to reach the backend
    port: Mapped[int | None] = mapped_column(Integer)
    internal_port: Mapped[int | None] = mapped_column(Integer)  # Port inside the newt subnet
    path: Mapped[str | None] = mapped_column(String(255))
    path_match_type: Mapped[str | None] = mapped_column(String(16))  # exact, prefix, regex
    rewrite_path: Mapped[str | None] = mapped_column(String(255))
    rewrite_path_type: Mapped[str | None] = mapped_column(String(16))  # exact, prefix, regex, stripPrefix
    priority: Mapped[int | None] = mapped_column(Integer, default=100)

    resource: Mapped[Resource] = relationship(backref="targets", lazy="joined")
    site: Mapped[Site] = relationship(backref="targets", lazy="joined")

class TargetHealthCheck(Base):
    """Latest health-check result of a target."""
    __tablename__ = "target_health_checks"
    id: Mapped[int] = mapped_column(primary_key=True)
    target_id: Mapped[int] = mapped_column(ForeignKey("targets.id"), unique=True)
    hc_health: Mapped[HealthStatus | None] = mapped_column(Enum(HealthStatus))
