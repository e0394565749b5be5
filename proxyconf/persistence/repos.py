from dataclasses import dataclass
from typing import Sequence
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session
from proxyconf.persistence.models import (
    Domain, ExitNode, HealthStatus, Resource, Site, SiteType, Target, TargetHealthCheck
)


@dataclass(frozen=True)
class TargetRow:
    """
    One denormalized (resource x target x site x health x domain) row.
    This is everything the routing synthesizer reads from the database.
    """
    resource_id: int
    resource_name: str
    full_domain: str | None
    ssl: bool
    http: bool | None
    proxy_port: int | None
    protocol: str
    subdomain: str | None
    domain_id: int | None
    enabled: bool
    sticky_session: bool
    tls_server_name: str | None
    set_host_header: str | None
    enable_proxy: bool
    headers: str | None
    proxy_protocol: bool
    proxy_protocol_version: int | None
    prefer_wildcard_cert: bool | None
    maintenance_mode_enabled: bool
    maintenance_mode_type: str | None
    maintenance_title: str | None
    maintenance_message: str | None
    maintenance_estimated_time: str | None

    target_id: int
    target_enabled: bool
    ip: str | None
    method: str | None
    port: int | None
    internal_port: int | None
    hc_health: str | None
    path: str | None
    path_match_type: str | None
    rewrite_path: str | None
    rewrite_path_type: str | None
    priority: int | None

    site_id: int
    site_type: SiteType
    site_online: bool
    subnet: str | None
    exit_node_id: int | None

    domain_cert_resolver: str | None


class ExitNodeRepo:
    def __init__(self, db: Session): self.db = db
    def get(self, id: int) -> ExitNode | None:
        return self.db.get(ExitNode, id)
    def update(self, n: ExitNode) -> ExitNode:
        self.db.add(n); self.db.commit(); self.db.refresh(n); return n

class DomainRepo:
    def __init__(self, db: Session): self.db = db
    def get(self, id: int) -> Domain | None:
        return self.db.get(Domain, id)

class ResourceRepo:
    def __init__(self, db: Session): self.db = db
    def get(self, id: int) -> Resource | None:
        return self.db.get(Resource, id)
    def by_full_domain(self, full_domain: str) -> Resource | None:
        return self.db.scalar(select(Resource).where(Resource.full_domain==full_domain).order_by(Resource.id).limit(1))
    def update(self, r: Resource) -> Resource:
        self.db.add(r); self.db.commit(); self.db.refresh(r); return r


class RouteSnapshotRepo:
    """
    Bulk reader for the routing synthesizer.
    Joins sites, targets, resources, domains and health checks in one query.
    """
    def __init__(self, db: Session): self.db = db

    def list_rows(
        self,
        exit_node_id: int,
        site_types: Sequence[SiteType],
        filter_out_namespace_domains: bool = False,
        allow_raw_resources: bool = True,
    ) -> list[TargetRow]:
        """
        Return every routable target row for an exit node.

        Only enabled targets of enabled resources are returned, on sites that either
        belong to the exit node or are unassigned local sites (when "local" is requested).
        Unhealthy targets are left out; targets without a health check count as healthy.
        Rows are ordered by target priority (highest first), then target id.
        """
        site_types = [SiteType(t) for t in site_types]

        # Sites on this exit node, plus unassigned local sites when local is requested
        site_scope = [Site.exit_node_id == exit_node_id]
        if SiteType.LOCAL in site_types:
            site_scope.append(and_(Site.exit_node_id.is_(None), Site.type == SiteType.LOCAL))

        conditions = [
            Target.enabled == True,
            Resource.enabled == True,
            or_(*site_scope),
            or_(TargetHealthCheck.hc_health != HealthStatus.UNHEALTHY, TargetHealthCheck.hc_health.is_(None)),
            Site.type.in_(site_types),
            Resource.http.is_not(None) if allow_raw_resources else Resource.http == True,
        ]
        if filter_out_namespace_domains:
            conditions.append(or_(Domain.id.is_(None), Domain.is_namespace == False))

        stmt = (
            select(Resource, Target, Site, Domain.cert_resolver, TargetHealthCheck.hc_health)
            .select_from(Site)
            .join(Target, Target.site_id == Site.id)
            .join(Resource, Resource.id == Target.resource_id)
            .outerjoin(Domain, Domain.id == Resource.domain_id)
            .outerjoin(TargetHealthCheck, TargetHealthCheck.target_id == Target.id)
            .where(and_(*conditions))
            .order_by(Target.priority.desc(), Target.id)
        )

        return [
            self._to_row(resource, target, site, cert_resolver, hc_health)
            for resource, target, site, cert_resolver, hc_health in self.db.execute(stmt).all()
        ]

    @staticmethod
    def _to_row(resource: Resource, target: Target, site: Site, cert_resolver: str | None, hc_health: HealthStatus | None) -> TargetRow:
        return TargetRow(
            resource_id=resource.id,
            resource_name=resource.name,
            full_domain=resource.full_domain,
            ssl=bool(resource.ssl),
            http=resource.http,
            proxy_port=resource.proxy_port,
            protocol=resource.protocol.value if resource.protocol else "tcp",
            subdomain=resource.subdomain,
            domain_id=resource.domain_id,
            enabled=bool(resource.enabled),
            sticky_session=bool(resource.sticky_session),
            tls_server_name=resource.tls_server_name,
            set_host_header=resource.set_host_header,
            enable_proxy=bool(resource.enable_proxy),
            headers=resource.headers,
            proxy_protocol=bool(resource.proxy_protocol),
            proxy_protocol_version=resource.proxy_protocol_version,
            prefer_wildcard_cert=resource.prefer_wildcard_cert,
            maintenance_mode_enabled=bool(resource.maintenance_mode_enabled),
            maintenance_mode_type=resource.maintenance_mode_type.value if resource.maintenance_mode_type else None,
            maintenance_title=resource.maintenance_title,
            maintenance_message=resource.maintenance_message,
            maintenance_estimated_time=resource.maintenance_estimated_time,
            target_id=target.id,
            target_enabled=bool(target.enabled),
            ip=target.ip,
            method=target.method,
            port=target.port,
            internal_port=target.internal_port,
            hc_health=hc_health.value if hc_health else None,
            path=target.path,
            path_match_type=target.path_match_type,
            rewrite_path=target.rewrite_path,
            rewrite_path_type=target.rewrite_path_type,
            priority=target.priority,
            site_id=site.id,
            site_type=site.type,
            site_online=bool(site.online),
            subnet=site.subnet,
            exit_node_id=site.exit_node_id,
            domain_cert_resolver=cert_resolver,
        )
