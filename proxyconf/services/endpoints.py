"""
Backend endpoint resolution per site type.
The same resolvers decide eligibility and build server addresses, so the two never disagree.
"""
from abc import ABC, abstractmethod
from typing import Iterable
from proxyconf.persistence.models import SiteType
from proxyconf.services.groups import GroupTarget


class EndpointResolver(ABC):
    """Knows which target fields a site type needs and how to turn them into an address."""

    @abstractmethod
    def has_required_fields(self, target: GroupTarget) -> bool:
        ...

    @abstractmethod
    def address(self, target: GroupTarget) -> str:
        """host:port the data plane connects to."""
        ...

    def is_eligible(self, target: GroupTarget, require_method: bool = True) -> bool:
        if require_method and not target.method:
            return False
        return self.has_required_fields(target)

    def url(self, target: GroupTarget) -> str:
        return f"{target.method}://{self.address(target)}"


class DirectEndpointResolver(EndpointResolver):
    """Local and WireGuard sites: the target's own IP and port."""

    def has_required_fields(self, target: GroupTarget) -> bool:
        return bool(target.ip and target.port)

    def address(self, target: GroupTarget) -> str:
        return f"{target.ip}:{target.port}"


class NewtEndpointResolver(EndpointResolver):
    """Newt sites: the tunnel subnet's network address and the target's internal port."""

    def has_required_fields(self, target: GroupTarget) -> bool:
        return bool(target.internal_port and target.site.subnet)

    def address(self, target: GroupTarget) -> str:
        network_address = target.site.subnet.split("/")[0]
        return f"{network_address}:{target.internal_port}"


RESOLVERS: dict[SiteType, EndpointResolver] = {
    SiteType.LOCAL: DirectEndpointResolver(),
    SiteType.WIREGUARD: DirectEndpointResolver(),
    SiteType.NEWT: NewtEndpointResolver(),
}


def resolver_for(target: GroupTarget) -> EndpointResolver | None:
    return RESOLVERS.get(target.site.type)


def eligible_targets(targets: Iterable[GroupTarget], require_method: bool = True) -> list[GroupTarget]:
    """
    Targets that may receive traffic, in their original order.

    Offline sites are dropped as long as any site of the group is online; when all
    are offline every site is kept, so traffic is not blackholed while site state catches up.
    """
    targets = list(targets)
    any_site_online = any(t.site.online for t in targets)

    eligible = []
    for target in targets:
        if not target.enabled:
            continue
        if any_site_online and not target.site.online:
            continue
        resolver = resolver_for(target)
        if resolver is None or not resolver.is_eligible(target, require_method):
            continue
        eligible.append(target)
    return eligible


def http_servers(targets: Iterable[GroupTarget]) -> list[dict[str, str]]:
    """loadBalancer servers for an HTTP service, deduplicated by URL."""
    return _dedup("url", (resolver_for(t).url(t) for t in eligible_targets(targets, require_method=True)))


def raw_servers(targets: Iterable[GroupTarget]) -> list[dict[str, str]]:
    """loadBalancer servers for a TCP/UDP service, deduplicated by address."""
    return _dedup("address", (resolver_for(t).address(t) for t in eligible_targets(targets, require_method=False)))


def _dedup(field_name: str, endpoints: Iterable[str]) -> list[dict[str, str]]:
    seen = set()
    servers = []
    for endpoint in endpoints:
        if endpoint in seen:
            continue
        seen.add(endpoint)
        servers.append({field_name: endpoint})
    return servers
