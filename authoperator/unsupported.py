"""Handling of the unsupported override that relaxes the master count check."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Union

import yaml

_logger = logging.getLogger(__name__)

UNSUPPORTED_UNSAFE_AUTHENTICATION_KEY = "useUnsupportedUnsafeNonHANonProductionUnstableOAuthServer"
SINGLE_REPLICA_TOPOLOGY_MODE = "SingleReplica"

_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_VALUES = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def _parse_bool(value: str) -> bool:
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean value {value!r}")


def _decode_overrides(raw: Union[bytes, str]) -> Dict[str, Any]:
    text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        _logger.warning("%s", exc)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as json_exc:
            raise ValueError(f"unable to decode unsupported config overrides: {json_exc}") from json_exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("unsupported config overrides must be a mapping")
    return data


def is_unsupported_unsafe_authentication(raw: Optional[Union[bytes, str]]) -> bool:
    """Tell whether the overrides enable the unsafe single-instance OAuth server.

    ``raw`` is the YAML or JSON of the unsupported config overrides. Raises
    ValueError when it cannot be decoded or the value is not a boolean string.
    """
    if raw is None:
        return False
    overrides = _decode_overrides(raw)
    if UNSUPPORTED_UNSAFE_AUTHENTICATION_KEY not in overrides:
        return False
    value = overrides[UNSUPPORTED_UNSAFE_AUTHENTICATION_KEY]
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return _parse_bool(value)
    return False


def get_expected_minimum_number_of_masters(
    raw: Optional[Union[bytes, str]], topology_mode: str
) -> int:
    """Return how many kube-apiservers must serve before reporting available."""
    if topology_mode == SINGLE_REPLICA_TOPOLOGY_MODE:
        return 1
    try:
        allow_any_number = is_unsupported_unsafe_authentication(raw)
    except ValueError as exc:
        _logger.error("%s", exc)
        return 3
    return 1 if allow_any_number else 3