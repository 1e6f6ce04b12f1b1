"""Pieces of the OAuth server deployment computed from cluster configuration."""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

_logger = logging.getLogger(__name__)

RVS_HASH_ANNOTATION = "operator.openshift.io/rvs-hash"
BOOTSTRAP_USER_EXISTS_ANNOTATION = "operator.openshift.io/bootstrap-user-exists"

_LOG_LEVELS = {
    "": 2,
    "Normal": 2,
    "Debug": 4,
    "Trace": 6,
    "TraceAll": 100,
}


@dataclass(frozen=True)
class Proxy:
    """The cluster proxy configuration as reported in its status."""

    name: str = ""
    resource_version: str = ""
    http_proxy: str = ""
    https_proxy: str = ""
    no_proxy: str = ""


@dataclass(frozen=True)
class EnvVar:
    name: str
    value: str


def get_log_level(log_level: str) -> int:
    """Return the server verbosity for an operator log level; unknown gives 0."""
    return _LOG_LEVELS.get(log_level, 0)


def proxy_config_to_env_vars(proxy: Proxy) -> List[EnvVar]:
    """Return the proxy environment variables that have a value."""
    candidates = (
        ("NO_PROXY", proxy.no_proxy),
        ("HTTP_PROXY", proxy.http_proxy),
        ("HTTPS_PROXY", proxy.https_proxy),
    )
    return [EnvVar(name, value) for name, value in candidates if value]


def resource_versions_hash(resource_versions: Iterable[str]) -> str:
    """Hash the tracked resource versions, independent of their order."""
    joined = ",".join(sorted(resource_versions))
    _logger.debug("tracked resource versions: %s", joined)
    digest = hashlib.sha512(joined.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def get_oauth_server_arguments_raw(
    observed_config: Union[bytes, str],
) -> Optional[Dict[str, Any]]:
    """Return the "serverArguments" of the observed config, or None if unset.

    Raises ValueError when the config is not a JSON object or the arguments
    are not an object.
    """
    try:
        config = json.loads(observed_config)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValueError(f"failed to unmarshal the observedConfig: {exc}") from exc
    if config is None:
        return None
    if not isinstance(config, dict):
        raise ValueError("failed to unmarshal the observedConfig: expected a JSON object")
    args = config.get("serverArguments")
    if args is None:
        return None
    if not isinstance(args, dict):
        raise ValueError(
            "failed to unmarshal the observedConfig: serverArguments must be a JSON object"
        )
    return args