"""
Route group aggregation.
Collapses denormalized target rows into one group per resource and path/rewrite variant.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable
from proxyconf.persistence.models import SiteType
from proxyconf.persistence.repos import TargetRow
from proxyconf.services.rewrite import sanitize, validate_path_rewrite_config

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 100


def normalize_path(path: str | None, match_type: str | None) -> str | None:
    """Give literal paths their leading slash; regexes are left as written."""
    if not path or match_type == "regex" or path.startswith("/"):
        return path
    return f"/{path}"


@dataclass(frozen=True)
class GroupKey:
    """
    Identity of a route group. Distinct keys always yield distinct groups.
    Paths are normalized, so "api" and "/api" with the same match type share a key.
    """
    resource_id: int
    path: str
    path_match_type: str
    rewrite_path: str
    rewrite_path_type: str

    @classmethod
    def from_row(cls, row: TargetRow) -> "GroupKey":
        return cls(
            resource_id=row.resource_id,
            path=normalize_path(row.path, row.path_match_type) or "",
            path_match_type=row.path_match_type or "",
            rewrite_path=normalize_path(row.rewrite_path, row.rewrite_path_type) or "",
            rewrite_path_type=row.rewrite_path_type or "",
        )

    @property
    def slug(self) -> str:
        """The name prefix Traefik objects of this group are keyed on."""
        path_key = "-".join(
            part for part in (sanitize(self.path) or "", self.path_match_type, self.rewrite_path, self.rewrite_path_type)
            if part
        )
        return sanitize("-".join(part for part in (str(self.resource_id), path_key) if part)) or ""


@dataclass(frozen=True)
class SiteSnapshot:
    site_id: int
    type: SiteType
    online: bool
    subnet: str | None
    exit_node_id: int | None


@dataclass(frozen=True)
class GroupTarget:
    target_id: int
    enabled: bool
    ip: str | None
    method: str | None
    port: int | None
    internal_port: int | None
    site: SiteSnapshot

    @classmethod
    def from_row(cls, row: TargetRow) -> "GroupTarget":
        return cls(
            target_id=row.target_id,
            enabled=row.target_enabled,
            ip=row.ip,
            method=row.method,
            port=row.port,
            internal_port=row.internal_port,
            site=SiteSnapshot(
                site_id=row.site_id,
                type=row.site_type,
                online=row.site_online,
                subnet=row.subnet,
                exit_node_id=row.exit_node_id,
            ),
        )


@dataclass(frozen=True)
class MaintenanceSettings:
    enabled: bool = False
    mode: str | None = None
    title: str | None = None
    message: str | None = None
    estimated_time: str | None = None


@dataclass(frozen=True)
class HttpRoute:
    """Host (and optionally path) based HTTP routing."""
    full_domain: str | None
    domain_id: int | None
    subdomain: str | None
    ssl: bool
    domain_cert_resolver: str | None
    prefer_wildcard_cert: bool | None
    tls_server_name: str | None
    set_host_header: str | None
    headers: str | None
    path: str | None
    path_match_type: str | None
    rewrite_path: str | None
    rewrite_path_type: str | None
    maintenance: MaintenanceSettings = field(default_factory=MaintenanceSettings)


@dataclass(frozen=True)
class RawRoute:
    """Plain TCP/UDP forwarding on a dedicated entrypoint."""
    protocol: str
    proxy_port: int | None
    enable_proxy: bool
    proxy_protocol: bool
    proxy_protocol_version: int


@dataclass(frozen=True)
class RouteGroup:
    key: GroupKey
    name_key: str  # Unique within one synthesis run, normally key.slug
    resource_id: int
    name: str
    enabled: bool
    sticky_session: bool
    priority: int
    route: HttpRoute | RawRoute
    targets: tuple[GroupTarget, ...]


def _route_from_row(row: TargetRow) -> HttpRoute | RawRoute:
    if row.http:
        return HttpRoute(
            full_domain=row.full_domain,
            domain_id=row.domain_id,
            subdomain=row.subdomain,
            ssl=row.ssl,
            domain_cert_resolver=row.domain_cert_resolver,
            prefer_wildcard_cert=row.prefer_wildcard_cert,
            tls_server_name=row.tls_server_name,
            set_host_header=row.set_host_header,
            headers=row.headers,
            path=normalize_path(row.path, row.path_match_type),
            path_match_type=row.path_match_type,
            rewrite_path=normalize_path(row.rewrite_path, row.rewrite_path_type),
            rewrite_path_type=row.rewrite_path_type,
            maintenance=MaintenanceSettings(
                enabled=row.maintenance_mode_enabled,
                mode=row.maintenance_mode_type,
                title=row.maintenance_title,
                message=row.maintenance_message,
                estimated_time=row.maintenance_estimated_time,
            ),
        )
    return RawRoute(
        protocol=(row.protocol or "tcp").lower(),
        proxy_port=row.proxy_port,
        enable_proxy=row.enable_proxy,
        proxy_protocol=row.proxy_protocol,
        proxy_protocol_version=row.proxy_protocol_version or 1,
    )


def aggregate_route_groups(rows: Iterable[TargetRow]) -> list[RouteGroup]:
    """
    Group rows by resource and path/rewrite configuration.

    Rows must arrive in the reader's order (priority desc, target id asc); the first row
    of a group provides its resource fields and priority, and target order is kept.
    Groups with an invalid path/rewrite combination are dropped entirely.
    """
    heads: dict[GroupKey, TargetRow] = {}
    targets: dict[GroupKey, list[GroupTarget]] = {}
    rejected: set[GroupKey] = set()

    for row in rows:
        key = GroupKey.from_row(row)
        if key in rejected:
            continue

        if key not in heads:
            validation = validate_path_rewrite_config(
                row.path, row.path_match_type, row.rewrite_path, row.rewrite_path_type
            )
            if not validation.is_valid:
                logger.error(f"Invalid path rewrite configuration for resource {row.resource_id}: {validation.error}")
                rejected.add(key)
                continue
            heads[key] = row
            targets[key] = []

        targets[key].append(GroupTarget.from_row(row))

    groups = []
    used_names: set[str] = set()
    for key, head in heads.items():
        name_key = key.slug
        if name_key in used_names:
            suffix = 2
            while f"{key.slug}-{suffix}" in used_names:
                suffix += 1
            name_key = f"{key.slug}-{suffix}"
            logger.warning(f"Route group name {key.slug} already taken for resource {key.resource_id}, using {name_key}")
        used_names.add(name_key)

        groups.append(RouteGroup(
            key=key,
            name_key=name_key,
            resource_id=head.resource_id,
            name=sanitize(head.resource_name) or "",
            enabled=head.enabled,
            sticky_session=head.sticky_session,
            priority=head.priority if head.priority is not None else DEFAULT_PRIORITY,
            route=_route_from_row(head),
            targets=tuple(targets[key]),
        ))
    return groups
