from datetime import datetime, timedelta, timezone

import pytest

from authoperator.ingressstate import (
    DEGRADED_CONDITION_TYPES,
    IngressStateController,
    check_addresses,
    endpoints_degraded,
    subset_with_ready_addresses,
    unhealthy_pod_messages,
)
from authoperator.models import (
    ConditionStatus,
    ContainerStatus,
    EndpointAddress,
    Endpoints,
    EndpointSubset,
    NotFoundError,
    ObjectReference,
    Pod,
)

NOW = datetime(2022, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "endpoints",
    [
        None,
        Endpoints(),
        Endpoints(uid="foo-uid"),
        Endpoints(
            uid="foo-uid",
            subsets=[EndpointSubset(not_ready_addresses=[EndpointAddress(ip="127.0.0.1")])],
        ),
    ],
    ids=["missing", "empty", "no-subsets", "all-not-ready"],
)
def test_subset_with_ready_addresses_degraded(endpoints):
    subset, condition = subset_with_ready_addresses(endpoints)
    assert subset is None
    assert condition is not None
    assert condition.type in DEGRADED_CONDITION_TYPES


def test_subset_with_ready_addresses_more_than_one_subset():
    endpoints = Endpoints(uid="foo-uid", subsets=[EndpointSubset(), EndpointSubset()])
    with pytest.raises(ValueError, match="More than one subset"):
        subset_with_ready_addresses(endpoints)


def test_subset_with_ready_addresses_healthy():
    endpoints = Endpoints(
        uid="foo-uid",
        subsets=[EndpointSubset(addresses=[EndpointAddress(ip="127.0.0.1")])],
    )
    subset, condition = subset_with_ready_addresses(endpoints)
    assert condition is None
    assert subset is endpoints.subsets[0]


def test_not_ready_message():
    endpoints = Endpoints(
        uid="foo-uid",
        subsets=[EndpointSubset(not_ready_addresses=[EndpointAddress(ip="127.0.0.1")])],
    )
    _, condition = subset_with_ready_addresses(endpoints)
    assert condition.reason == "NonReadyEndpoints"
    assert condition.message == "All 1 endpoints for oauth-server are reporting 'not ready'"


def _pod_address(name):
    return EndpointAddress(target_ref=ObjectReference(kind="Pod", name=name))


@pytest.mark.parametrize(
    "addresses, unhealthy, count",
    [
        ([_pod_address("foo")], {"foo"}, 1),
        ([_pod_address("foo"), _pod_address("bar")], {"foo", "bar"}, 1),
        ([_pod_address("foo")], set(), 0),
    ],
)
def test_check_addresses(addresses, unhealthy, count):
    conditions = check_addresses(
        addresses, lambda ref: ["unhealthy"] if ref.name in unhealthy else []
    )
    assert len(conditions) == count
    assert all(c.type in DEGRADED_CONDITION_TYPES for c in conditions)


def test_check_addresses_checks_each_pod_once():
    calls = []

    def check(ref):
        calls.append(ref.name)
        return ["unhealthy"]

    conditions = check_addresses([_pod_address("foo"), _pod_address("foo")], check)
    assert calls == ["foo"]
    assert conditions[0].message == "Unhealthy pods found: unhealthy"


def test_check_addresses_ignores_non_pod_targets():
    addresses = [EndpointAddress(ip="10.0.0.1"), EndpointAddress(target_ref=ObjectReference(kind="Node", name="n"))]
    assert check_addresses(addresses, lambda ref: ["unhealthy"]) == []


def test_unhealthy_pod_messages_terminated_and_restarted():
    pod = Pod(
        name="p",
        container_statuses=[ContainerStatus(name="c", terminated="oom", restart_count=3)],
    )
    assert unhealthy_pod_messages(pod, NOW) == [
        'pod "p" container "c" terminated with "oom"',
        'pod "p" container "c" restarted 3 times',
    ]


def test_unhealthy_pod_messages_healthy_container():
    pod = Pod(name="p", container_statuses=[ContainerStatus(name="c", ready=True, running=True, restart_count=5)])
    assert unhealthy_pod_messages(pod, NOW) == []


def test_unhealthy_pod_messages_pending_too_long():
    pod = Pod(name="p", phase="Pending", start_time=NOW - timedelta(minutes=6))
    assert unhealthy_pod_messages(pod, NOW) == ['pod "p" has been pending for longer than 5m0s']


def test_unhealthy_pod_messages_pending_briefly():
    pod = Pod(name="p", phase="Pending", start_time=NOW - timedelta(minutes=1))
    assert unhealthy_pod_messages(pod, NOW) == []


def test_endpoints_degraded():
    condition = endpoints_degraded("MissingEndpoints", "msg")
    assert condition.type == "IngressStateEndpointsDegraded"
    assert condition.status is ConditionStatus.TRUE
    assert (condition.reason, condition.message) == ("MissingEndpoints", "msg")


def _raise_not_found(namespace, name):
    raise NotFoundError(f"{namespace}/{name} not found")


def test_controller_missing_endpoints():
    controller = IngressStateController(get_endpoints=_raise_not_found, get_pod=_raise_not_found)
    conditions = controller.degraded_conditions()
    assert [c.reason for c in conditions] == ["MissingEndpoints"]


def test_controller_reports_unreadable_pod():
    endpoints = Endpoints(
        uid="foo-uid",
        subsets=[EndpointSubset(addresses=[_pod_address("foo")])],
    )
    controller = IngressStateController(
        get_endpoints=lambda ns, name: endpoints, get_pod=_raise_not_found, clock=lambda: NOW
    )
    conditions = controller.degraded_conditions()
    assert len(conditions) == 1
    assert conditions[0].reason == "UnhealthyPods"
    assert 'error getting pod "foo"' in conditions[0].message


def test_controller_healthy_pods():
    endpoints = Endpoints(
        uid="foo-uid",
        subsets=[EndpointSubset(addresses=[_pod_address("foo")])],
    )
    pod = Pod(name="foo", container_statuses=[ContainerStatus(name="c", ready=True, running=True)])
    controller = IngressStateController(
        get_endpoints=lambda ns, name: endpoints, get_pod=lambda ns, name: pod, clock=lambda: NOW
    )
    assert controller.degraded_conditions() == []