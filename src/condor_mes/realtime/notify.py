"""Producer-side helpers — the only way request handlers push events.

Each helper maps one business event onto a subscription kind. Payloads
are forwarded as-is; this layer adds no envelope except for alerts,
which carry the action that happened.
"""

from typing import Any, Literal

from condor_mes.realtime.registry import ConnectionRegistry, SubscriptionKind

AlertAction = Literal["new", "update", "delete"]


def notify_sensor_data(
    registry: ConnectionRegistry, sensor_id: int | str, payload: dict[str, Any]
) -> int:
    """Push a sensor reading to clients watching ``sensor_id``."""
    return registry.broadcast(SubscriptionKind.SENSOR, sensor_id, payload)


def notify_new_work_orders(
    registry: ConnectionRegistry, organization_id: int | str, payload: dict[str, Any]
) -> int:
    """Push newly released work orders of an organization."""
    return registry.broadcast(SubscriptionKind.NEW_WORK_ORDERS, organization_id, payload)


def notify_work_orders_advance(
    registry: ConnectionRegistry, organization_id: int | str, payload: dict[str, Any]
) -> int:
    """Push completed-quantity/status progress of an organization's work orders."""
    return registry.broadcast(SubscriptionKind.WORK_ORDERS_ADVANCE, organization_id, payload)


def notify_alert(
    registry: ConnectionRegistry,
    organization_id: int | str,
    payload: dict[str, Any],
    action: AlertAction,
) -> int:
    return registry.broadcast(
        SubscriptionKind.ALERT,
        organization_id,
        {"action": action, "data": payload},
    )
