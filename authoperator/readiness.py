"""Checks that the kube-apiservers serve the OAuth metadata the operator published."""

from __future__ import annotations

import errno
import json
import logging
import re
from datetime import timedelta
from typing import Any, Dict, Iterator, List, Mapping, Optional

import httpx

from authoperator.models import ConfigMap, Endpoints, EndpointSubset, Service

_logger = logging.getLogger(__name__)

CONTROLLER_NAME = "WellKnownReadyController"
DEFAULT_KAS_SERVICE_PORT = 443
KAS_SERVICE_PORT_ENV = "KUBERNETES_SERVICE_PORT_HTTPS"
OAUTH_METADATA_KEY = "oauthMetadata"
WELL_KNOWN_PATH = "/.well-known/oauth-authorization-server"
PROTOCOL_TCP = "TCP"

_INTEGER = re.compile(r"[+-]?[0-9]+")

_HINT_NOT_RUNNING = (
    " (kube-apiserver is probably not running on that node, killed before graceful "
    "termination or crash-looping)"
)
_HINT_NO_ROUTES = (
    " (check node networking, the SDN might have stale routing information for pod IPs "
    "on that node)"
)
_HINT_UNSTABLE = " (check cluster networking, it might be temporarily unstable)"
_HINT_OVERLOADED = " (check kube-apiserver on that node, it might be under too heavy load)"
_HINT_DNS = " (check DNS on that node)"


class ProgressingError(Exception):
    """A failure expected to resolve itself within ``max_age``."""

    def __init__(self, reason: str, error: Exception, max_age: timedelta) -> None:
        super().__init__(str(error))
        self.reason = reason
        self.error = error
        self.max_age = max_age
        self.__cause__ = error


def kas_service_port_from_environment(environ: Mapping[str, str]) -> int:
    """Return the kube-apiserver HTTPS service port, 443 when unset or invalid."""
    raw = environ.get(KAS_SERVICE_PORT_ENV, "")
    if _INTEGER.fullmatch(raw):
        return int(raw)
    _logger.warning(
        "Defaulting %s to %d due to parsing error: invalid syntax %r",
        KAS_SERVICE_PORT_ENV,
        DEFAULT_KAS_SERVICE_PORT,
        raw,
    )
    return DEFAULT_KAS_SERVICE_PORT


def _error_chain(err: BaseException) -> Iterator[BaseException]:
    seen = set()
    current: Optional[BaseException] = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _any_error(err: BaseException, predicate) -> bool:
    return any(predicate(e) for e in _error_chain(err))


def _is_connection_refused(e: BaseException) -> bool:
    return isinstance(e, ConnectionRefusedError) or "connection refused" in str(e).lower()


def _is_no_routes(e: BaseException) -> bool:
    if isinstance(e, OSError) and e.errno == errno.EHOSTUNREACH:
        return True
    return "no route to host" in str(e).lower()


def _is_reset_or_eof(e: BaseException) -> bool:
    if isinstance(e, (ConnectionResetError, EOFError)):
        return True
    message = str(e).lower()
    return any(
        marker in message
        for marker in (
            "connection reset by peer",
            "use of closed network connection",
            "server sent goaway and closed the connection",
            "unexpected eof",
        )
    )


def _is_overloaded(e: BaseException) -> bool:
    return isinstance(e, httpx.HTTPStatusError) and e.response.status_code in (429, 504)


def well_known_roundtrip_error_hint(err: BaseException) -> str:
    """Return a hint on where to look for the cause of a failed request."""
    if _any_error(err, _is_connection_refused):
        return _HINT_NOT_RUNNING
    if _any_error(err, _is_no_routes):
        return _HINT_NO_ROUTES
    if _any_error(err, _is_reset_or_eof):
        return _HINT_UNSTABLE
    if _any_error(err, _is_overloaded):
        return _HINT_OVERLOADED
    if ":53" in str(err):
        return _HINT_DNS
    return ""


def parse_oauth_metadata(config_map: ConfigMap) -> Optional[Dict[str, Any]]:
    """Return the OAuth metadata stored in the config map.

    Raises ProgressingError when the metadata is missing and ValueError when
    it is not a JSON object.
    """
    metadata_json = config_map.data.get(OAUTH_METADATA_KEY, "")
    if not metadata_json:
        raise ProgressingError(
            "NoOAuthMetadata",
            ValueError(
                "the openshift-config-managed/oauth-openshift configMap is missing data "
                "in the 'oauthMetadata' key"
            ),
            timedelta(minutes=1),
        )
    try:
        metadata = json.loads(metadata_json)
    except json.JSONDecodeError as exc:
        raise ValueError(f"failed to unmarshal cm metadata: {exc}") from exc
    if metadata is not None and not isinstance(metadata, dict):
        raise ValueError("failed to unmarshal cm metadata: expected a JSON object")
    return metadata


def get_kas_target_port_from_service(service: Service, kas_service_port: int) -> Optional[int]:
    """Return the target port behind the service's HTTPS port, or None."""
    for port in service.ports:
        if port.target_port and port.protocol == PROTOCOL_TCP and port.port == kas_service_port:
            return port.target_port
    return None


def subset_has_kas_target_port(subset: EndpointSubset, target_port: int) -> bool:
    """Tell whether the subset exposes the target port over TCP."""
    return any(
        port.protocol == PROTOCOL_TCP and port.port == target_port for port in subset.ports
    )


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def get_api_server_ips(
    service: Service, endpoints: Endpoints, kas_service_port: int
) -> List[str]:
    """Return "ip:port" of every kube-apiserver instance.

    Raises ValueError when the target port cannot be found or an instance is
    not ready.
    """
    target_port = get_kas_target_port_from_service(service, kas_service_port)
    if target_port is None:
        raise ValueError(f"unable to find kube api server service target port: {service!r}")

    for subset in endpoints.subsets:
        if not subset_has_kas_target_port(subset, target_port):
            continue
        if subset.not_ready_addresses or not subset.addresses:
            raise ValueError(f"kube api server endpointLister is not ready: {endpoints!r}")
        return [_join_host_port(address.ip, target_port) for address in subset.addresses]

    raise ValueError(f"unable to find kube api server endpointLister port: {endpoints!r}")


def check_wellknown_endpoint_ready(
    api_ip: str, client: httpx.Client, expected_metadata: Optional[Dict[str, Any]]
) -> None:
    """Check that the kube-apiserver at ``api_ip`` serves ``expected_metadata``.

    Raises ProgressingError while the server does not serve it yet or serves
    something else, ConnectionError when it cannot be queried and ValueError
    when its answer is not JSON.
    """
    well_known = f"https://{api_ip}{WELL_KNOWN_PATH}"
    try:
        request = client.build_request("GET", well_known)
    except (httpx.InvalidURL, ValueError) as exc:
        raise ValueError(f"failed to build request to well-known {well_known}: {exc}") from exc

    try:
        response = client.send(request)
    except httpx.HTTPError as exc:
        raise ConnectionError(
            f"failed to GET kube-apiserver oauth endpoint {well_known}: "
            f"{exc}{well_known_roundtrip_error_hint(exc)}"
        ) from exc

    with response:
        if response.status_code == 404:
            raise ProgressingError(
                "OAuthMetadataNotYetServed",
                ConnectionError(
                    f"kube-apiserver oauth endpoint {well_known} is not yet served and "
                    "authentication operator keeps waiting (check kube-apiserver operator, "
                    "and check that instances roll out successfully, which can take several "
                    "minutes per instance)"
                ),
                timedelta(minutes=5),
            )
        if response.status_code != 200:
            raise ConnectionError(
                f"kube-apiserver oauth endpoint {well_known} replied with unexpected status: "
                f"{response.status_code} {response.reason_phrase} "
                "(check kube-apiserver logs if this error persists)"
            )
        try:
            body = response.read()
        except httpx.HTTPError as exc:
            raise ConnectionError(
                f"failed to read {well_known} body: {exc} "
                "(check kube-apiserver logs if this error persists)"
            ) from exc

    try:
        received = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValueError(
            f"failed to unmarshal {well_known} JSON: {exc} "
            "(check kube-apiserver logs if this error persists)"
        ) from exc
    if received is not None and not isinstance(received, dict):
        raise ValueError(
            f"failed to unmarshal {well_known} JSON: expected a JSON object "
            "(check kube-apiserver logs if this error persists)"
        )

    if expected_metadata != received:
        raise ProgressingError(
            "OAuthMetadataDiffer",
            ValueError(
                f"the {well_known} endpoint returns different oauth metadata than is stored "
                "in openshift-config-managed/oauth-openshift ConfigMap (check kube-apiserver "
                "operator that instances roll out, which happens when oauth metadata changes)"
            ),
            timedelta(minutes=5),
        )