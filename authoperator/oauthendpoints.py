"""Lists the OAuth server URLs whose health is checked, and how to trust them."""

from __future__ import annotations

import ssl
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from authoperator.models import ConfigMap, Endpoints, NotFoundError, Service

TARGET_NAMESPACE = "openshift-authentication"
OAUTH_NAME = "oauth-openshift"
ROUTE_ADMITTED = "Admitted"
SERVICE_CA_CONFIG_MAP = "v4-0-config-system-service-ca"
SERVICE_CA_KEY = "service-ca.crt"
# The serving certificate of the endpoints has no IP SANs, so TLS has to be
# verified against this host name when the endpoints are reached by IP.
OAUTH_SERVICE_SERVER_NAME = "oauth-openshift.openshift-authentication.svc"

_PEM_CERT_MARKER = "-----BEGIN CERTIFICATE-----"
_ROUTE_REF = f'"{TARGET_NAMESPACE}/{OAUTH_NAME}"'


@dataclass
class RouteIngress:
    """One ingress of a route; ``conditions`` maps a condition type to its status."""

    host: str = ""
    conditions: Dict[str, str] = field(default_factory=dict)

    @property
    def admitted(self) -> bool:
        return self.conditions.get(ROUTE_ADMITTED) == "True"


@dataclass
class Route:
    name: str = OAUTH_NAME
    namespace: str = TARGET_NAMESPACE
    ingress: List[RouteIngress] = field(default_factory=list)


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def to_healthz_url(urls: Iterable[str]) -> List[str]:
    """Turn each "host[:port]" into its https health check URL."""
    return [f"https://{url}/healthz" for url in urls]


def list_oauth_service_endpoints(endpoints: Optional[Endpoints]) -> List[str]:
    """Return the health URLs of every ready endpoint address and port.

    Raises NotFoundError when there are no endpoints and ValueError when
    none of them is ready.
    """
    if endpoints is None:
        raise NotFoundError(f'endpoints {_ROUTE_REF} not found')
    results = [
        _join_host_port(address.ip, port.port)
        for subset in endpoints.subsets
        for address in subset.addresses
        for port in subset.ports
    ]
    if not results:
        raise ValueError("oauth service endpoints are not ready")
    return to_healthz_url(results)


def list_oauth_services(service: Optional[Service]) -> List[str]:
    """Return the health URLs of the service's cluster IP on each of its ports.

    Raises NotFoundError when there is no service and ValueError when it
    has no ports.
    """
    if service is None:
        raise NotFoundError(f'service {_ROUTE_REF} not found')
    results = [_join_host_port(service.cluster_ip, port.port) for port in service.ports]
    if not results:
        raise ValueError("no valid oauth services found")
    return to_healthz_url(results)


def list_oauth_routes(
    current_hostnames: Optional[Sequence[str]], route: Optional[Route]
) -> List[str]:
    """Return the health URLs of the route hosts that the ingress config wants.

    ``current_hostnames`` are the hostnames the cluster ingress config reports
    for the OAuth route, or None when it has no status for it yet. Raises
    NotFoundError when the route is missing and ValueError when the wanted
    hostnames are not all admitted.
    """
    if route is None:
        raise NotFoundError(f"failed to retrieve route from cache: route {_ROUTE_REF} not found")
    if current_hostnames is None:
        raise ValueError(
            f"ingress.config/cluster does not yet have status for the {_ROUTE_REF} route"
        )

    wanted = set(current_hostnames)
    results: List[str] = []
    for ingress in route.ingress:
        if ingress.host and ingress.host in wanted and ingress.admitted:
            results.append(ingress.host)
            wanted.discard(ingress.host)

    if not results:
        raise ValueError(f"route {_ROUTE_REF}: status does not have a valid host address")
    if wanted:
        pending = " ".join(sorted(wanted))
        raise ValueError(
            f"route {_ROUTE_REF}: the following hostnames have not yet been admitted: [{pending}]"
        )
    return to_healthz_url(results)


def get_oauth_endpoint_tls_config(service_ca_config_map: ConfigMap) -> ssl.SSLContext:
    """Build a TLS context that trusts only the service CA bundle.

    Connections made with it should pass OAUTH_SERVICE_SERVER_NAME as the
    server host name. Raises ValueError when the bundle is missing or holds
    no certificates.
    """
    if SERVICE_CA_KEY not in service_ca_config_map.data:
        raise ValueError(
            f'"{SERVICE_CA_KEY}" key of the "{TARGET_NAMESPACE}/{SERVICE_CA_CONFIG_MAP}" CM is empty'
        )
    pem = service_ca_config_map.data[SERVICE_CA_KEY]
    error = ValueError("no certificates could be parsed from the service-ca CA bundle")
    if _PEM_CERT_MARKER not in pem:
        raise error
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    try:
        context.load_verify_locations(cadata=pem)
    except (ssl.SSLError, ValueError) as exc:
        raise error from exc
    return context