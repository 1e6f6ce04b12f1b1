"""Health checks, proxy matching and configuration helpers for a cluster OAuth server."""

__version__ = "0.1.0"

__all__ = [
    "deployment",
    "ingressnodes",
    "ingressstate",
    "metadata",
    "models",
    "oauthendpoints",
    "proxyconfig",
    "proxymatching",
    "readiness",
    "unsupported",
]