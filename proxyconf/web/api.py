"""
API endpoints for the data plane and for resource settings.
Serves the dynamic routing configuration Traefik's HTTP provider polls.
"""
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Header, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from proxyconf.config import settings
from proxyconf.persistence.db import get_db, Base, engine
from proxyconf.persistence import repos
from proxyconf.persistence.models import MaintenanceModeType, Resource, SiteType
from proxyconf.services.maintenance import DEFAULT_MESSAGE, DEFAULT_TITLE
from proxyconf.services.traefik import TraefikConfigGenerator
from proxyconf.web.schemas import ResourceSettingsIn, ResourceSettingsOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# Ensure database tables exist
Base.metadata.create_all(bind=engine)

@router.get("/traefik-config")
def get_traefik_config(
    exit_node_id: int,
    site_types: list[SiteType] | None = Query(None),
    filter_out_namespace_domains: bool = False,
    allow_raw_resources: bool = True,
    db: Session = Depends(get_db),
    x_config_token: str | None = Header(None),
):
    """
    Get the Traefik dynamic configuration for an exit node.
    Requires X-Config-Token header when CONFIG_PULL_TOKEN is set.
    """
    if settings.CONFIG_PULL_TOKEN and x_config_token != settings.CONFIG_PULL_TOKEN:
        raise HTTPException(status_code=403, detail="Forbidden")

    exit_node_repo = repos.ExitNodeRepo(db)
    exit_node = exit_node_repo.get(exit_node_id)
    if not exit_node:
        raise HTTPException(status_code=404, detail="Exit node not found")

    config = TraefikConfigGenerator(db).generate(
        exit_node_id,
        site_types=site_types,
        filter_out_namespace_domains=filter_out_namespace_domains,
        allow_raw_resources=allow_raw_resources,
    )

    # Update last config pull time
    exit_node.last_config_pull_time = datetime.now(timezone.utc)
    exit_node_repo.update(exit_node)

    return JSONResponse(config)


################################
#      Resource settings       #
################################


def _check_admin_token(x_admin_token: str | None):
    if settings.ADMIN_TOKEN and x_admin_token != settings.ADMIN_TOKEN:
        raise HTTPException(status_code=403, detail="Forbidden")


def _settings_out(resource: Resource) -> ResourceSettingsOut:
    """Current settings, with the maintenance page defaults filled in where nothing is stored."""
    return ResourceSettingsOut(
        id=resource.id,
        name=resource.name,
        enabled=resource.enabled,
        http=resource.http,
        subdomain=resource.subdomain,
        domain_id=resource.domain_id,
        full_domain=resource.full_domain,
        proxy_port=resource.proxy_port,
        maintenance_mode_enabled=bool(resource.maintenance_mode_enabled),
        maintenance_mode_type=resource.maintenance_mode_type or MaintenanceModeType.AUTOMATIC,
        maintenance_title=resource.maintenance_title or DEFAULT_TITLE,
        maintenance_message=resource.maintenance_message or DEFAULT_MESSAGE,
        maintenance_estimated_time=resource.maintenance_estimated_time or "",
    )


@router.get("/resources/{resource_id}/settings", response_model=ResourceSettingsOut)
def get_resource_settings(resource_id: int, db: Session = Depends(get_db), x_admin_token: str | None = Header(None)):
    _check_admin_token(x_admin_token)
    resource = repos.ResourceRepo(db).get(resource_id)
    if not resource:
        raise HTTPException(status_code=404, detail="Resource not found")
    return _settings_out(resource)


@router.put("/resources/{resource_id}/settings", response_model=ResourceSettingsOut)
def update_resource_settings(
    resource_id: int,
    body: ResourceSettingsIn,
    db: Session = Depends(get_db),
    x_admin_token: str | None = Header(None),
):
    """
    Change the general settings of a resource, including its maintenance mode.
    Only the fields present in the body are written. Empty maintenance texts clear the stored value.
    Domain and subdomain apply to HTTP resources, the proxy port to raw ones.
    """
    _check_admin_token(x_admin_token)
    resource_repo = repos.ResourceRepo(db)
    resource = resource_repo.get(resource_id)
    if not resource:
        raise HTTPException(status_code=404, detail="Resource not found")

    changes = body.model_dump(exclude_unset=True)

    domain = None
    if resource.http and ("domain_id" in changes or "subdomain" in changes):
        domain_id = changes.get("domain_id", resource.domain_id)
        domain = repos.DomainRepo(db).get(domain_id) if domain_id else None
        if not domain:
            raise HTTPException(status_code=400, detail="Domain not found")

    for key in ("enabled", "name", "maintenance_mode_enabled", "maintenance_mode_type"):
        if changes.get(key) is not None:
            setattr(resource, key, changes[key])
    for key in ("maintenance_title", "maintenance_message", "maintenance_estimated_time"):
        if key in changes:
            setattr(resource, key, changes[key] or None)

    if domain:
        subdomain = changes.get("subdomain", resource.subdomain) or None
        resource.domain_id = domain.id
        resource.subdomain = subdomain
        resource.full_domain = f"{subdomain}.{domain.base_domain}" if subdomain else domain.base_domain
    if not resource.http and "proxy_port" in changes:
        resource.proxy_port = changes["proxy_port"]

    resource_repo.update(resource)
    logger.info(f"Updated settings of resource {resource.id} ({resource.name})")
    return _settings_out(resource)
