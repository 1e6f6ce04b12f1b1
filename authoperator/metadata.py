"""OAuth server metadata published for the API server, and the route it depends on."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from authoperator.models import ConditionStatus, ConfigMap, OperatorCondition

_logger = logging.getLogger(__name__)

TARGET_NAMESPACE = "openshift-authentication"
ROUTE_NAME = "oauth-openshift"
METADATA_CONFIG_MAP_NAME = "v4-0-config-system-metadata"
OAUTH_METADATA_KEY = "oauthMetadata"
INTEGRATED_OAUTH_METADATA_NAME = "oauth-openshift"

KNOWN_CONDITION_NAMES = frozenset({
    "IngressConfigDegraded",
    "AuthConfigDegraded",
    "OAuthSystemMetadataDegraded",
})

_METADATA_TEMPLATE = """
{{
  "issuer": "https://{host}",
  "authorization_endpoint": "https://{host}/oauth/authorize",
  "token_endpoint": "https://{host}/oauth/token",
  "scopes_supported": [
    "user:check-access",
    "user:full",
    "user:info",
    "user:list-projects",
    "user:list-scoped-projects"
  ],
  "response_types_supported": [
    "code",
    "token"
  ],
  "grant_types_supported": [
    "authorization_code",
    "implicit"
  ],
  "code_challenge_methods_supported": [
    "plain",
    "S256"
  ]
}}
"""


def get_oauth_metadata(host: str) -> str:
    """Return the OAuth authorization server metadata JSON for ``host``."""
    return _METADATA_TEMPLATE.format(host=host).strip()


def get_oauth_metadata_config_map(route_host: str) -> ConfigMap:
    """Return the config map that carries the metadata for the route host."""
    return ConfigMap(
        name=METADATA_CONFIG_MAP_NAME,
        namespace=TARGET_NAMESPACE,
        labels={"app": "oauth-openshift"},
        annotations={},
        data={OAUTH_METADATA_KEY: get_oauth_metadata(route_host)},
    )


def check_oauth_route(route_hosts: Optional[Sequence[str]]) -> List[OperatorCondition]:
    """Return degraded conditions for the OAuth route, or an empty list.

    ``route_hosts`` are the hosts of the route's ingress status in order, or
    None when the route could not be read.
    """
    if route_hosts is None:
        return [
            OperatorCondition(
                type="RouteDegraded",
                status=ConditionStatus.TRUE,
                reason="FailedGet",
                message=(
                    f"Unable to get required route {TARGET_NAMESPACE}/{ROUTE_NAME}: "
                    f'routes.route.openshift.io "{ROUTE_NAME}" not found'
                ),
            )
        ]
    if not route_hosts or not route_hosts[0]:
        return [
            OperatorCondition(
                type="RouteDegraded",
                status=ConditionStatus.TRUE,
                reason="NotReady",
                message=(
                    f"Route {TARGET_NAMESPACE}/{ROUTE_NAME} is not ready: "
                    "The ingress host is empty in route status"
                ),
            )
        ]
    return []


def integrated_oauth_metadata_needs_update(current_reference: Optional[str]) -> bool:
    """Tell whether the cluster authentication status points at another config map."""
    needs_update = current_reference != INTEGRATED_OAUTH_METADATA_NAME
    if needs_update:
        _logger.debug(
            "integrated OAuth metadata reference %r differs from %r",
            current_reference,
            INTEGRATED_OAUTH_METADATA_NAME,
        )
    return needs_update