"""Detection of proxy settings under which the OAuth route is unreachable."""

from __future__ import annotations

import json
import logging
import os
import re
import ssl
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, Sequence, Tuple
from urllib.parse import SplitResult, urlsplit

import httpx

from authoperator.proxymatching import canonical_addr, parse_no_proxy

_logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 5.0
CA_BUNDLE_KEY = "ca-bundle.crt"
_PEM_CERT_MARKER = "-----BEGIN CERTIFICATE-----"
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_CONTROL_CHAR = re.compile(r"[\x00-\x1f\x7f]")


class ProxyConfigError(Exception):
    """Raised when the proxy setup is wrong or an endpoint cannot be reached."""


@dataclass(frozen=True)
class ProxyConfig:
    """Proxy settings as read from the environment."""

    http_proxy: str = ""
    https_proxy: str = ""
    no_proxy: str = ""


def _env_any(environ: Mapping[str, str], *names: str) -> str:
    for name in names:
        value = environ.get(name, "")
        if value:
            return value
    return ""


def proxy_config_from_environment(environ: Optional[Mapping[str, str]] = None) -> ProxyConfig:
    """Read HTTP_PROXY, HTTPS_PROXY and NO_PROXY (upper case first)."""
    env = os.environ if environ is None else environ
    return ProxyConfig(
        http_proxy=_env_any(env, "HTTP_PROXY", "http_proxy"),
        https_proxy=_env_any(env, "HTTPS_PROXY", "https_proxy"),
        no_proxy=_env_any(env, "NO_PROXY", "no_proxy"),
    )


def is_proxy_configured(proxy_config: Optional[ProxyConfig]) -> bool:
    return proxy_config is not None and bool(proxy_config.http_proxy or proxy_config.https_proxy)


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def _parse_url(raw: str) -> SplitResult:
    if _CONTROL_CHAR.search(raw):
        raise ValueError(f"parse {_quote(raw)}: invalid control character in URL")
    bad = _BAD_ESCAPE.search(raw)
    if bad:
        escape = raw[bad.start():bad.start() + 3]
        raise ValueError(f"parse {_quote(raw)}: invalid URL escape {_quote(escape)}")
    return urlsplit(raw)


def _select_proxy(scheme: str, config: ProxyConfig) -> SplitResult:
    if scheme == "https" and config.https_proxy:
        try:
            return _parse_url(config.https_proxy)
        except ValueError:
            _logger.debug("failed to parse https proxy %r", config.https_proxy)
    return _parse_url(config.http_proxy)


def proxy_func(url: str) -> SplitResult:
    """Return the proxy URL for a request to ``url``, ignoring NO_PROXY.

    Raises ValueError when no usable proxy URL can be parsed.
    """
    return _select_proxy(urlsplit(url).scheme, proxy_config_from_environment())


def is_endpoint_reachable(endpoint_url: str, client: httpx.Client) -> None:
    """GET ``endpoint_url``; raise ProxyConfigError unless it answers 2xx."""
    try:
        response = client.get(endpoint_url, timeout=REQUEST_TIMEOUT)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise ProxyConfigError(str(exc)) from exc
    if not 200 <= response.status_code <= 299:
        raise ProxyConfigError(f"{_quote(endpoint_url)} returned {response.status_code}")


def _reachability_error(endpoint_url: str, client: httpx.Client) -> Optional[ProxyConfigError]:
    try:
        is_endpoint_reachable(endpoint_url, client)
    except ProxyConfigError as exc:
        return exc
    return None


def check_proxy_config(
    endpoint_url: str,
    no_proxy: str,
    client_with_proxy: httpx.Client,
    client_without_proxy: httpx.Client,
) -> None:
    """Reach the endpoint with and without the proxy and compare with NO_PROXY.

    Raises ProxyConfigError describing the mis-configuration, if any.
    """
    with_proxy_err = _reachability_error(endpoint_url, client_with_proxy)
    without_proxy_err = _reachability_error(endpoint_url, client_without_proxy)
    in_no_proxy = parse_no_proxy(no_proxy).matches(canonical_addr(endpoint_url))
    endpoint = _quote(endpoint_url)

    if in_no_proxy and without_proxy_err is not None:
        if with_proxy_err is None:
            raise ProxyConfigError(
                f"failed to reach endpoint({endpoint}) found in NO_PROXY({_quote(no_proxy)}) "
                f"with error: {without_proxy_err}"
            )
        raise ProxyConfigError(
            f"endpoint({endpoint}) found in NO_PROXY({_quote(no_proxy)}) is unreachable "
            f"with proxy({with_proxy_err}) and without proxy({without_proxy_err})"
        )

    if not in_no_proxy and with_proxy_err is not None:
        if without_proxy_err is None:
            raise ProxyConfigError(
                f"failed to reach endpoint({endpoint}) missing in NO_PROXY({_quote(no_proxy)}) "
                f"with error: {with_proxy_err}"
            )
        raise ProxyConfigError(
            f"endpoint({endpoint}) is unreachable with proxy({with_proxy_err}) "
            f"and without proxy({without_proxy_err})"
        )


class _FailingTransport(httpx.BaseTransport):
    """Transport that fails every request because no proxy can be used."""

    def __init__(self, reason: str) -> None:
        self._reason = reason

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        raise httpx.ProxyError(self._reason, request=request)


def _proxy_transport(scheme: str, config: ProxyConfig, context: ssl.SSLContext) -> httpx.BaseTransport:
    try:
        proxy_url = _select_proxy(scheme, config).geturl()
    except ValueError as exc:
        return _FailingTransport(str(exc))
    if not proxy_url:
        return _FailingTransport(f"no proxy configured for {scheme} requests")
    try:
        return httpx.HTTPTransport(verify=context, proxy=httpx.Proxy(proxy_url))
    except (ValueError, httpx.InvalidURL) as exc:
        return _FailingTransport(str(exc))


@dataclass
class ProxyConfigChecker:
    """Reports proxy settings under which a route cannot be reached.

    ``config_map_data(namespace, name)`` returns the data of a config map;
    ``ca_config_maps`` maps namespaces to the config maps holding CA bundles.
    """

    config_map_data: Callable[[str, str], Mapping[str, str]]
    ca_config_maps: Mapping[str, Sequence[str]] = field(default_factory=dict)
    environ: Optional[Mapping[str, str]] = None

    def get_ca_bundle(self) -> ssl.SSLContext:
        """Build a TLS context trusting only the configured CA bundles."""
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        for namespace, names in self.ca_config_maps.items():
            for name in names:
                pem = self.config_map_data(namespace, name).get(CA_BUNDLE_KEY, "")
                if _PEM_CERT_MARKER not in pem:
                    raise ProxyConfigError("unable to append system trust ca bundle")
                try:
                    context.load_verify_locations(cadata=pem)
                except ssl.SSLError as exc:
                    raise ProxyConfigError("unable to append system trust ca bundle") from exc
        return context

    def create_http_clients(self) -> Tuple[httpx.Client, httpx.Client]:
        """Return a client that goes through the proxy and one that does not."""
        context = self.get_ca_bundle()
        config = proxy_config_from_environment(self.environ)
        mounts = {
            f"{scheme}://": _proxy_transport(scheme, config, context)
            for scheme in ("http", "https")
        }
        with_proxy = httpx.Client(verify=context, trust_env=False, mounts=mounts)
        without_proxy = httpx.Client(verify=context, trust_env=False)
        return with_proxy, without_proxy

    def check(self, route_url: str) -> None:
        """Check the route's health endpoint; a no-op when no proxy is set."""
        config = proxy_config_from_environment(self.environ)
        if not is_proxy_configured(config):
            return
        healthz_url = urlsplit(route_url)._replace(path="/healthz").geturl()
        with_proxy, without_proxy = self.create_http_clients()
        with with_proxy, without_proxy:
            check_proxy_config(healthz_url, config.no_proxy, with_proxy, without_proxy)