"""Checks that some node can run the ingress pods authentication relies on."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from authoperator.models import (
    ConditionStatus,
    LabelSelector,
    Node,
    OperatorCondition,
    label_selector_as_map,
)

KNOWN_CONDITION_NAMES = frozenset({"ReadyIngressNodesAvailable"})
INGRESS_OPERATOR_NAMESPACE = "openshift-ingress-operator"
DEFAULT_INGRESS_CONTROLLER = "default"
WORKER_ROLE_LABEL = "node-role.kubernetes.io/worker"
MASTER_ROLE_LABEL = "node-role.kubernetes.io/master"


@dataclass
class IngressController:
    """An ingress controller and the node selector of its placement, if any."""

    name: str
    namespace: str = INGRESS_OPERATOR_NAMESPACE
    node_selector: Optional[LabelSelector] = None


def count_ready_worker_nodes(nodes: Iterable[Node]) -> int:
    """Count the nodes whose Ready condition is True."""
    return sum(1 for node in nodes if node.conditions.get("Ready") == ConditionStatus.TRUE.value)


def _is_schedulable_master(node: Node) -> bool:
    return not any(
        taint.effect == "NoSchedule" and taint.key == MASTER_ROLE_LABEL for taint in node.taints
    )


@dataclass
class IngressNodesAvailableController:
    """Reports when no node is available to run ingress pods."""

    nodes: Sequence[Node] = field(default_factory=list)
    ingress_controllers: Sequence[IngressController] = field(default_factory=list)

    def _nodes_matching(self, selector) -> List[Node]:
        return [node for node in self.nodes if node.matches(selector)]

    def number_of_custom_ingress_targets(self) -> int:
        """Count nodes selected by the default ingress controller's placement."""
        controller = next(
            (
                ic
                for ic in self.ingress_controllers
                if ic.namespace == INGRESS_OPERATOR_NAMESPACE and ic.name == DEFAULT_INGRESS_CONTROLLER
            ),
            None,
        )
        if controller is None or controller.node_selector is None:
            return 0
        try:
            selector = label_selector_as_map(controller.node_selector)
        except ValueError:
            return 0
        return len(self._nodes_matching(selector or {}))

    def conditions(self) -> List[OperatorCondition]:
        """Return the conditions this controller currently reports."""
        workers = self._nodes_matching({WORKER_ROLE_LABEL: ""})
        workload_ready_nodes = count_ready_worker_nodes(workers)

        masters = self._nodes_matching({MASTER_ROLE_LABEL: ""})
        workload_ready_nodes += sum(1 for node in masters if _is_schedulable_master(node))

        custom_targets = self.number_of_custom_ingress_targets()
        workload_ready_nodes += custom_targets

        if workload_ready_nodes:
            return []
        return [
            OperatorCondition(
                type="ReadyIngressNodesAvailable",
                status=ConditionStatus.FALSE,
                reason="NoReadyIngressNodes",
                message=(
                    "Authentication requires functional ingress which requires at least one "
                    "schedulable and ready node. Got "
                    f"{len(workers)} worker nodes, {len(masters)} master nodes, "
                    f"{custom_targets} custom target nodes "
                    "(none are schedulable or ready for ingress pods)."
                ),
            )
        ]