import json

from authoperator.metadata import (
    OAUTH_METADATA_KEY,
    check_oauth_route,
    get_oauth_metadata,
    get_oauth_metadata_config_map,
    integrated_oauth_metadata_needs_update,
)
from authoperator.models import ConditionStatus

HOST = "oauth.apps.example.com"


def test_metadata_is_valid_json_with_endpoints():
    metadata = json.loads(get_oauth_metadata(HOST))
    assert metadata["issuer"] == f"https://{HOST}"
    assert metadata["authorization_endpoint"] == f"https://{HOST}/oauth/authorize"
    assert metadata["token_endpoint"] == f"https://{HOST}/oauth/token"


def test_metadata_lists_supported_values():
    metadata = json.loads(get_oauth_metadata(HOST))
    assert metadata["response_types_supported"] == ["code", "token"]
    assert metadata["grant_types_supported"] == ["authorization_code", "implicit"]
    assert metadata["code_challenge_methods_supported"] == ["plain", "S256"]
    assert "user:full" in metadata["scopes_supported"]


def test_metadata_is_trimmed():
    text = get_oauth_metadata(HOST)
    assert text.startswith("{")
    assert text.endswith("}")
    assert text == text.strip()


def test_config_map_carries_metadata():
    cm = get_oauth_metadata_config_map(HOST)
    assert cm.name == "v4-0-config-system-metadata"
    assert cm.namespace == "openshift-authentication"
    assert cm.labels == {"app": "oauth-openshift"}
    assert cm.data[OAUTH_METADATA_KEY] == get_oauth_metadata(HOST)


def test_missing_route_is_degraded():
    (condition,) = check_oauth_route(None)
    assert condition.type == "RouteDegraded"
    assert condition.status == ConditionStatus.TRUE
    assert condition.reason == "FailedGet"


def test_route_without_host_is_not_ready():
    for hosts in ([], [""], ["", HOST]):
        (condition,) = check_oauth_route(hosts)
        assert condition.reason == "NotReady"


def test_route_with_host_is_healthy():
    assert check_oauth_route([HOST]) == []


def test_integrated_metadata_reference():
    assert integrated_oauth_metadata_needs_update("oauth-openshift") is False
    assert integrated_oauth_metadata_needs_update("") is True
    assert integrated_oauth_metadata_needs_update(None) is True