"""Health of the OAuth server endpoints and the pods behind them."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from authoperator.models import (
    ConditionStatus,
    EndpointAddress,
    Endpoints,
    EndpointSubset,
    NotFoundError,
    ObjectReference,
    OperatorCondition,
    Pod,
)

MAX_TOLERATED_POD_PENDING_DURATION = timedelta(minutes=5)
_MAX_PENDING_TEXT = "5m0s"
POD_PENDING = "Pending"
ENDPOINTS_NAME = "oauth-openshift"

DEGRADED_CONDITION_TYPES = frozenset({
    "IngressStateEndpointsDegraded",
    "IngressStatePodsDegraded",
})


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def unhealthy_pod_messages(pod: Pod, now: datetime) -> List[str]:
    """Return messages explaining why the pod's endpoint is not healthy."""
    result: List[str] = []
    for status in pod.container_statuses:
        if status.ready and status.running:
            continue
        if status.terminated is not None:
            result.append(
                f"pod {_quote(pod.name)} container {_quote(status.name)} "
                f"terminated with {_quote(status.terminated)}"
            )
        if status.restart_count > 1:
            result.append(
                f"pod {_quote(pod.name)} container {_quote(status.name)} "
                f"restarted {status.restart_count} times"
            )
    pending_too_long = (
        pod.phase == POD_PENDING
        and pod.start_time is not None
        and now - pod.start_time >= MAX_TOLERATED_POD_PENDING_DURATION
    )
    if pending_too_long:
        result.append(f"pod {_quote(pod.name)} has been pending for longer than {_MAX_PENDING_TEXT}")
    return result


def endpoints_degraded(reason: str, message: str) -> OperatorCondition:
    return OperatorCondition(
        type="IngressStateEndpointsDegraded",
        status=ConditionStatus.TRUE,
        reason=reason,
        message=message,
    )


def subset_with_ready_addresses(
    endpoints: Optional[Endpoints],
) -> Tuple[Optional[EndpointSubset], Optional[OperatorCondition]]:
    """Return the single subset with ready addresses, or a degraded condition.

    Raises ValueError when the endpoints hold more than one subset.
    """
    if endpoints is None or not endpoints.uid:
        return None, endpoints_degraded("MissingEndpoints", "No endpoints found for oauth-server")
    if not endpoints.subsets:
        return None, endpoints_degraded(
            "MissingSubsets", "No subsets found for the endpoints of oauth-server"
        )
    if len(endpoints.subsets) > 1:
        raise ValueError("More than one subset found for the endpoints of oauth-server")
    subset = endpoints.subsets[0]
    if not subset.addresses and subset.not_ready_addresses:
        message = (
            f"All {len(subset.not_ready_addresses)} endpoints for oauth-server "
            "are reporting 'not ready'"
        )
        return None, endpoints_degraded("NonReadyEndpoints", message)
    return subset, None


def check_addresses(
    addresses: Sequence[EndpointAddress],
    check_pod: Callable[[ObjectReference], Sequence[str]],
) -> List[OperatorCondition]:
    """Check each pod behind the addresses once and report unhealthy ones."""
    pod_messages: Dict[str, List[str]] = {}
    unhealthy_pod_count = 0
    for address in addresses:
        ref = address.target_ref
        if ref is None or ref.kind != "Pod" or ref.name in pod_messages:
            continue
        messages = list(check_pod(ref))
        if messages:
            unhealthy_pod_count += 1
        pod_messages[ref.name] = messages

    if not unhealthy_pod_count:
        return []
    unhealthy = [message for messages in pod_messages.values() for message in messages]
    return [
        OperatorCondition(
            type="IngressStatePodsDegraded",
            status=ConditionStatus.TRUE,
            reason="UnhealthyPods",
            message=f"Unhealthy pods found: {','.join(unhealthy)}",
        )
    ]


@dataclass
class IngressStateController:
    """Computes the degraded conditions of the OAuth server endpoints.

    ``get_endpoints(namespace, name)`` and ``get_pod(namespace, name)`` fetch
    objects and raise NotFoundError when they are missing.
    """

    get_endpoints: Callable[[str, str], Endpoints]
    get_pod: Callable[[str, str], Pod]
    target_namespace: str = "openshift-authentication"
    clock: Callable[[], datetime] = field(default=_utcnow)

    def check_pod_status(self, reference: ObjectReference) -> List[str]:
        """Return the problems of the referenced pod, or why it could not be read."""
        try:
            pod = self.get_pod(reference.namespace, reference.name)
        except Exception as exc:  # any lookup failure is reported as a problem
            return [f"error getting pod {_quote(reference.name)}: {exc}"]
        return unhealthy_pod_messages(pod, self.clock())

    def degraded_conditions(self) -> List[OperatorCondition]:
        """Return the conditions this controller currently reports."""
        try:
            endpoints: Optional[Endpoints] = self.get_endpoints(
                self.target_namespace, ENDPOINTS_NAME
            )
        except NotFoundError:
            endpoints = None
        subset, condition = subset_with_ready_addresses(endpoints)
        if subset is None:
            return [condition] if condition is not None else []
        return check_addresses(subset.addresses, self.check_pod_status)