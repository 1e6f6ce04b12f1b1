"""Cluster object shapes that the controllers inspect."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Mapping, Optional


class ConditionStatus(str, Enum):
    """Status of an operator or node condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class OperatorCondition:
    """A condition reported on the operator status."""

    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""


class NotFoundError(LookupError):
    """Raised when a requested cluster object does not exist."""


@dataclass(frozen=True)
class ObjectReference:
    kind: str = ""
    name: str = ""
    namespace: str = ""


@dataclass
class EndpointAddress:
    ip: str = ""
    target_ref: Optional[ObjectReference] = None


@dataclass
class EndpointPort:
    port: int
    protocol: str = "TCP"
    name: str = ""


@dataclass
class EndpointSubset:
    addresses: List[EndpointAddress] = field(default_factory=list)
    not_ready_addresses: List[EndpointAddress] = field(default_factory=list)
    ports: List[EndpointPort] = field(default_factory=list)


@dataclass
class Endpoints:
    uid: str = ""
    name: str = ""
    namespace: str = ""
    subsets: List[EndpointSubset] = field(default_factory=list)


@dataclass
class ContainerStatus:
    """State of one container; ``terminated`` holds the termination message."""

    name: str
    ready: bool = False
    running: bool = False
    terminated: Optional[str] = None
    restart_count: int = 0


@dataclass
class Pod:
    name: str
    namespace: str = ""
    phase: str = ""
    start_time: Optional[datetime] = None
    container_statuses: List[ContainerStatus] = field(default_factory=list)


@dataclass(frozen=True)
class Taint:
    key: str
    effect: str
    value: str = ""


@dataclass
class Node:
    """A node; ``conditions`` maps a condition type to its status."""

    name: str
    labels: Dict[str, str] = field(default_factory=dict)
    conditions: Dict[str, str] = field(default_factory=dict)
    taints: List[Taint] = field(default_factory=list)

    def matches(self, selector: Mapping[str, str]) -> bool:
        """Tell whether every label in ``selector`` is set to the same value."""
        return all(
            key in self.labels and self.labels[key] == value
            for key, value in selector.items()
        )


@dataclass(frozen=True)
class LabelSelectorRequirement:
    key: str
    operator: str
    values: List[str] = field(default_factory=list)


@dataclass
class LabelSelector:
    match_labels: Dict[str, str] = field(default_factory=dict)
    match_expressions: List[LabelSelectorRequirement] = field(default_factory=list)


def label_selector_as_map(selector: Optional[LabelSelector]) -> Optional[Dict[str, str]]:
    """Turn a selector into a plain label map.

    Only "In" with a single value and "Exists" can be expressed that way;
    any other expression raises ValueError.
    """
    if selector is None:
        return None
    result = dict(selector.match_labels)
    for expr in selector.match_expressions:
        operator = json.dumps(expr.operator, ensure_ascii=False)
        if expr.operator == "In":
            if len(expr.values) != 1:
                raise ValueError(
                    f"operator {operator} without a single value cannot be converted "
                    "into the old label selector format"
                )
            result[expr.key] = expr.values[0]
        elif expr.operator == "Exists":
            result[expr.key] = ""
        else:
            raise ValueError(f"{operator} is not a valid label selector operator")
    return result


@dataclass
class ServicePort:
    port: int
    target_port: int = 0
    protocol: str = "TCP"
    name: str = ""


@dataclass
class Service:
    name: str
    namespace: str = ""
    cluster_ip: str = ""
    ports: List[ServicePort] = field(default_factory=list)


@dataclass
class ConfigMap:
    name: str
    namespace: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    data: Dict[str, str] = field(default_factory=dict)


@dataclass
class Secret:
    name: str
    namespace: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    data: Dict[str, bytes] = field(default_factory=dict)