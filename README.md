# authoperator

Building blocks for keeping a cluster's integrated OAuth server healthy:
NO_PROXY matching, proxy reachability checks, endpoint and node health
conditions, and the OAuth discovery metadata the API servers must serve.

## What it provides

- `authoperator.proxymatching`: `parse_no_proxy` turns a `NO_PROXY` list into
  a `ProxyMatchers` object whose `matches("host:port")` tells whether an
  address bypasses the proxy. Entries may be `*`, CIDR ranges, IP addresses
  (with an optional port) or domains (`example.com`, `.example.com`,
  `*.example.com`, optionally with a port). `canonical_addr` turns a URL into
  `host:port`, using the scheme's default port (`http` 80, `https` 443,
  `socks5` 1080) when the URL has none.
- `authoperator.proxyconfig`: `proxy_config_from_environment` reads
  `HTTP_PROXY`, `HTTPS_PROXY` and `NO_PROXY` (upper case first) into a
  `ProxyConfig`; `is_proxy_configured` tells whether a proxy is set.
  `check_proxy_config` reaches an endpoint with two `httpx` clients, one
  through the proxy and one direct, and raises `ProxyConfigError` when the
  results do not agree with `NO_PROXY`. `ProxyConfigChecker` builds those
  clients from CA bundles held in config maps and checks a route's
  `/healthz`; its `check` does nothing when no proxy is configured.
- `authoperator.unsupported`: `is_unsupported_unsafe_authentication` reads
  the unsupported config overrides (YAML or JSON) and
  `get_expected_minimum_number_of_masters` returns 1 or 3 depending on the
  topology mode and that override.
- `authoperator.models`: dataclasses for the cluster objects the checks
  inspect (`Endpoints`, `Pod`, `Node`, `Service`, `ConfigMap`, `Secret`, ...),
  `OperatorCondition`, `ConditionStatus`, `NotFoundError` and
  `label_selector_as_map`.
- `authoperator.ingressstate`: `subset_with_ready_addresses`,
  `check_addresses` and `unhealthy_pod_messages`, and
  `IngressStateController.degraded_conditions`, which reports degraded
  conditions for the OAuth server endpoints and the pods behind them.
- `authoperator.ingressnodes`: `IngressNodesAvailableController.conditions`
  reports when no worker, schedulable master or custom ingress target node
  is available to run ingress pods.
- `authoperator.oauthendpoints`: builds the `/healthz` URLs for the OAuth
  route, service and service endpoints, and `get_oauth_endpoint_tls_config`
  returns an `ssl.SSLContext` trusting only the service CA bundle.
- `authoperator.metadata`: `get_oauth_metadata` renders the OAuth
  authorization server discovery document, `get_oauth_metadata_config_map`
  wraps it in a `ConfigMap`, and `check_oauth_route` reports a degraded route.
- `authoperator.deployment`: `get_log_level`, `proxy_config_to_env_vars`,
  `resource_versions_hash` (an order-independent SHA-512 of resource
  versions, URL-safe base64 without padding) and
  `get_oauth_server_arguments_raw`.
- `authoperator.readiness`: `get_api_server_ips` finds each kube-apiserver
  instance, `check_wellknown_endpoint_ready` checks that it serves the
  expected metadata at `/.well-known/oauth-authorization-server` (raising
  `ProgressingError` while it does not yet), and
  `well_known_roundtrip_error_hint` suggests where to look when a request
  fails.

## What it does not do

The package works on objects and clients handed to it. It does not talk to
a cluster API, watch resources, apply objects or update operator status,
and it has no command-line program. It does not generate session secrets
or the OAuth server's configuration.

## Installation

```
pip install .
```

## Example

```python
from authoperator.proxymatching import parse_no_proxy

matchers = parse_no_proxy("example.com,10.0.0.0/8")
matchers.matches("api.example.com:443")   # True
matchers.matches("10.1.2.3:80")           # True
matchers.matches("example.org:443")       # False
```

```python
from authoperator.metadata import get_oauth_metadata

print(get_oauth_metadata("oauth.apps.example.com"))
```

## Running the tests

```
pip install .[test]
pytest
```