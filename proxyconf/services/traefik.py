"""
Traefik dynamic configuration generation.
Builds the routers, services, middlewares and transports an exit node serves from the
current resources, targets, sites and health-check state.
"""
import json
import logging
from typing import Any, Iterable, Sequence
from sqlalchemy.orm import Session
from proxyconf.config import Settings, settings as default_settings
from proxyconf.persistence import repos
from proxyconf.persistence.models import MaintenanceModeType, SiteType
from proxyconf.persistence.repos import TargetRow
from proxyconf.services.endpoints import eligible_targets, http_servers, raw_servers
from proxyconf.services.groups import DEFAULT_PRIORITY, HttpRoute, RawRoute, RouteGroup, aggregate_route_groups
from proxyconf.services.maintenance import MAINTENANCE_PRIORITY, should_show_maintenance
from proxyconf.services.rewrite import PathRewriteError, create_path_rewrite_middleware

logger = logging.getLogger(__name__)

REDIRECT_HTTPS_MIDDLEWARE = "redirect-to-https"

PATH_MATCH_BONUS = {"exact": 5, "prefix": 3, "regex": 2}


def wildcard_domain(full_domain: str, subdomain: str | None) -> str:
    """
    Domain to request a wildcard certificate for.
    Without a subdomain the full domain itself is used, i.e. no wildcard.
    """
    if not subdomain:
        return full_domain
    parts = full_domain.split(".")
    if len(parts) <= 2:
        return f"*.{full_domain}"
    return "*." + ".".join(parts[1:])


def resolve_tls(route: HttpRoute, config: Settings) -> dict[str, Any]:
    resolver = (route.domain_cert_resolver or "").strip() or config.TRAEFIK_CERT_RESOLVER
    if route.prefer_wildcard_cert is not None:
        prefer_wildcard = route.prefer_wildcard_cert
    else:
        prefer_wildcard = config.TRAEFIK_PREFER_WILDCARD_CERT

    tls: dict[str, Any] = {"certResolver": resolver}
    if prefer_wildcard:
        tls["domains"] = [{"main": wildcard_domain(route.full_domain, route.subdomain)}]
    return tls


def route_priority(priority: int | None, path: str | None, path_match_type: str | None) -> int:
    """
    Router priority: an explicit override wins, otherwise more specific paths rank higher.
    A "/" path is a catch-all and always ranks lowest.
    """
    if priority and priority != DEFAULT_PRIORITY:
        return priority

    result = DEFAULT_PRIORITY
    if path and path_match_type:
        result += 10 + PATH_MATCH_BONUS.get(path_match_type, 0)
        if path == "/":
            result = 1
    return result


def route_rule(full_domain: str, path: str | None, path_match_type: str | None) -> str:
    rule = f"Host(`{full_domain}`)"
    if not path or not path_match_type:
        return rule

    normalized = path if path.startswith("/") else f"/{path}"
    if path_match_type == "exact":
        rule += f" && Path(`{normalized}`)"
    elif path_match_type == "prefix":
        rule += f" && PathPrefix(`{normalized}`)"
    elif path_match_type == "regex":
        # regexes are used as written
        rule += f" && PathRegexp(`{path}`)"
    return rule


def parse_custom_headers(raw_headers: str | None, set_host_header: str | None, resource_id: int) -> dict[str, str]:
    """Merge the JSON header list with the Host override, which always wins."""
    headers: dict[str, str] = {}
    if raw_headers:
        try:
            for header in json.loads(raw_headers):
                headers[header["name"]] = header["value"]
        except (json.JSONDecodeError, TypeError, KeyError) as e:
            logger.warning(f"Failed to parse headers for resource {resource_id}: {e}")
            headers = {}
    if set_host_header:
        headers["Host"] = set_host_header
    return headers


class TraefikConfigBuilder:
    """
    Assembles one Traefik dynamic configuration document from aggregated route groups.
    build() keeps no state between calls, so one builder can be shared.
    """
    def __init__(self, config: Settings = default_settings):
        self.config = config

    def build(self, groups: Sequence[RouteGroup]) -> dict[str, Any]:
        if not groups:
            return {}

        output: dict[str, Any] = {
            "http": {
                "middlewares": {
                    REDIRECT_HTTPS_MIDDLEWARE: {"redirectScheme": {"scheme": "https"}},
                },
            },
        }

        for group in groups:
            if not group.enabled:
                continue
            match group.route:
                case HttpRoute() as route:
                    self._add_http_group(output, group, route)
                case RawRoute() as route:
                    self._add_raw_group(output, group, route)

        return output

    def _entrypoint(self, ssl: bool) -> str:
        return self.config.TRAEFIK_HTTPS_ENTRYPOINT if ssl else self.config.TRAEFIK_HTTP_ENTRYPOINT

    def _add_http_group(self, output: dict[str, Any], group: RouteGroup, route: HttpRoute):
        if not route.domain_id or not route.full_domain:
            return

        http = output["http"]
        routers = http.setdefault("routers", {})
        services = http.setdefault("services", {})

        has_healthy_servers = len(eligible_targets(group.targets, require_method=True)) > 0
        if should_show_maintenance(route.maintenance, has_healthy_servers):
            if route.maintenance.mode == MaintenanceModeType.FORCED.value:
                logger.info(f"Resource {group.name} ({route.full_domain}) is in FORCED maintenance mode")
            else:
                logger.warning(
                    f"Resource {group.name} ({route.full_domain}) has no healthy servers - showing maintenance page (AUTOMATIC mode)"
                )
            self._add_maintenance_group(output, group, route)
            return

        router_name = f"{group.name_key}-{group.name}-router"
        service_name = f"{group.name_key}-{group.name}-service"
        tls = resolve_tls(route, self.config)
        rule = route_rule(route.full_domain, route.path, route.path_match_type)
        priority = route_priority(group.priority, route.path, route.path_match_type)

        router: dict[str, Any] = {
            "entryPoints": [self._entrypoint(route.ssl)],
            "middlewares": self._router_middlewares(output, group, route),
            "service": service_name,
            "rule": rule,
            "priority": priority,
        }
        if route.ssl:
            router["tls"] = tls
        routers[router_name] = router

        if route.ssl:
            routers[f"{router_name}-redirect"] = {
                "entryPoints": [self.config.TRAEFIK_HTTP_ENTRYPOINT],
                "middlewares": [REDIRECT_HTTPS_MIDDLEWARE],
                "service": service_name,
                "rule": rule,
                "priority": priority,
            }

        load_balancer: dict[str, Any] = {"servers": http_servers(group.targets)}
        if group.sticky_session:
            load_balancer["sticky"] = {
                "cookie": {
                    "name": self.config.TRAEFIK_STICKY_COOKIE_NAME,
                    "secure": route.ssl,
                    "httpOnly": True,
                }
            }

        if route.tls_server_name:
            transport_name = f"{group.name_key}-transport"
            http.setdefault("serversTransports", {})[transport_name] = {
                "serverName": route.tls_server_name,
                # Traefik does not merge this with the static default, self-signed backends need it set
                "insecureSkipVerify": True,
            }
            load_balancer["serversTransport"] = transport_name

        services[service_name] = {"loadBalancer": load_balancer}

    def _add_maintenance_group(self, output: dict[str, Any], group: RouteGroup, route: HttpRoute):
        http = output["http"]
        router_name = f"{group.name_key}-maintenance-router"
        service_name = f"{group.name_key}-maintenance-service"
        rule = f"Host(`{route.full_domain}`)"

        http["services"][service_name] = {
            "loadBalancer": {
                "servers": [{"url": f"http://{self.config.MAINTENANCE_HOST}:{self.config.MAINTENANCE_PORT}"}],
                "passHostHeader": True,
            }
        }

        router: dict[str, Any] = {
            "entryPoints": [self._entrypoint(route.ssl)],
            "service": service_name,
            "rule": rule,
            "priority": MAINTENANCE_PRIORITY,
        }
        if route.ssl:
            router["tls"] = resolve_tls(route, self.config)
        http["routers"][router_name] = router

        if route.ssl:
            http["routers"][f"{router_name}-redirect"] = {
                "entryPoints": [self.config.TRAEFIK_HTTP_ENTRYPOINT],
                "middlewares": [REDIRECT_HTTPS_MIDDLEWARE],
                "service": service_name,
                "rule": rule,
                "priority": MAINTENANCE_PRIORITY,
            }

    def _router_middlewares(self, output: dict[str, Any], group: RouteGroup, route: HttpRoute) -> list[str]:
        """Auth first, then path rewriting, then custom headers."""
        middlewares = [self.config.TRAEFIK_AUTH_MIDDLEWARE, *self.config.TRAEFIK_ADDITIONAL_MIDDLEWARES]
        http_middlewares = output["http"]["middlewares"]

        if (
            route.rewrite_path is not None
            and route.path is not None
            and route.path_match_type
            and route.rewrite_path_type
        ):
            rewrite_name = f"rewrite-r{group.resource_id}-{group.name_key}"
            try:
                rewrite = create_path_rewrite_middleware(
                    rewrite_name, route.path, route.path_match_type, route.rewrite_path, route.rewrite_path_type
                )
            except PathRewriteError as e:
                logger.error(f"Failed to create path rewrite middleware for resource {group.resource_id}: {e}")
            else:
                http_middlewares.update(rewrite.middlewares)
                middlewares.extend(rewrite.chain or [rewrite_name])
                logger.debug(
                    f"Created path rewrite middleware {rewrite_name}: "
                    f"{route.path_match_type}({route.path}) -> {route.rewrite_path_type}({route.rewrite_path})"
                )

        headers = parse_custom_headers(route.headers, route.set_host_header, group.resource_id)
        if headers:
            headers_name = f"{group.name_key}-headers-middleware"
            http_middlewares[headers_name] = {"headers": {"customRequestHeaders": headers}}
            middlewares.append(headers_name)

        return middlewares

    def _add_raw_group(self, output: dict[str, Any], group: RouteGroup, route: RawRoute):
        if not route.enable_proxy or not route.proxy_port:
            return

        protocol = route.protocol
        section = output.setdefault(protocol, {"routers": {}, "services": {}})
        router_name = f"{group.name_key}-{group.name}-router"
        service_name = f"{group.name_key}-{group.name}-service"

        router: dict[str, Any] = {
            "entryPoints": [f"{protocol}-{route.proxy_port}"],
            "service": service_name,
        }
        if protocol == "tcp":
            router["rule"] = "HostSNI(`*`)"
        section["routers"][router_name] = router

        load_balancer: dict[str, Any] = {"servers": raw_servers(group.targets)}
        if route.proxy_protocol and protocol == "tcp":
            load_balancer["serversTransport"] = (
                f"{self.config.TRAEFIK_PP_TRANSPORT_PREFIX}{route.proxy_protocol_version}@file"
            )
        if group.sticky_session:
            load_balancer["sticky"] = {"ipStrategy": {"depth": 0, "sourcePort": True}}
        section["services"][service_name] = {"loadBalancer": load_balancer}


def build_traefik_config(rows: Iterable[TargetRow], config: Settings = default_settings) -> dict[str, Any]:
    """Pure part of the synthesis: ordered snapshot rows in, configuration document out."""
    return TraefikConfigBuilder(config).build(aggregate_route_groups(rows))


class TraefikConfigGenerator:
    """
    Generates the dynamic configuration for one exit node from the database.
    Database errors are not caught here; the caller retries the whole generation.
    """
    def __init__(self, db: Session, config: Settings = default_settings):
        self.db = db
        self.config = config

    def generate(
        self,
        exit_node_id: int,
        site_types: Sequence[SiteType | str] | None = None,
        filter_out_namespace_domains: bool = False,
        allow_raw_resources: bool = True,
    ) -> dict[str, Any]:
        rows = repos.RouteSnapshotRepo(self.db).list_rows(
            exit_node_id,
            site_types or self.config.TRAEFIK_SITE_TYPES,
            filter_out_namespace_domains=filter_out_namespace_domains,
            allow_raw_resources=allow_raw_resources,
        )
        return build_traefik_config(rows, self.config)
