"""
Order lifecycle authorization policy.

Roles are ordered by privilege: admin > chef > staff. For order operations a
higher role holds every capability of the roles below it. Admin additionally
owns venue configuration and staff deactivation.

Cancel policy:
- chef may cancel an order that is still pending
- admin may cancel a pending or preparing order
- staff may never cancel
"""

from typing import Dict, Optional

from cafe_api.models.order import OrderEvent, OrderStatus, next_status
from cafe_api.models.staff import StaffRole

# Role hierarchy: admin > chef > staff
ROLE_HIERARCHY: Dict[StaffRole, int] = {
    StaffRole.ADMIN: 3,
    StaffRole.CHEF: 2,
    StaffRole.STAFF: 1,
}

# Lowest role allowed to fire each event
EVENT_MINIMUM_ROLE: Dict[OrderEvent, StaffRole] = {
    OrderEvent.START_PREPARING: StaffRole.CHEF,
    OrderEvent.MARK_COMPLETE: StaffRole.CHEF,
    OrderEvent.MARK_PAID: StaffRole.STAFF,
    OrderEvent.CANCEL: StaffRole.CHEF,
}

# Cancelling work already in the kitchen needs more than the base cancel right
CANCEL_MINIMUM_ROLE: Dict[OrderStatus, StaffRole] = {
    OrderStatus.PENDING: StaffRole.CHEF,
    OrderStatus.PREPARING: StaffRole.ADMIN,
}


def role_at_least(role: StaffRole, minimum: StaffRole) -> bool:
    """True if ``role`` is ``minimum`` or ranks above it."""
    return ROLE_HIERARCHY.get(StaffRole(role), 0) >= ROLE_HIERARCHY[minimum]


def can_perform(
    role: StaffRole,
    event: OrderEvent,
    from_status: Optional[OrderStatus] = None,
) -> bool:
    """Whether ``role`` may fire ``event``.

    ``from_status`` narrows the answer for events whose permission depends on
    where the order currently is (cancel). Without it the answer is whether
    the role can fire the event from at least one status.
    """
    try:
        role = StaffRole(role)
        event = OrderEvent(event)
    except ValueError:
        return False

    if not role_at_least(role, EVENT_MINIMUM_ROLE[event]):
        return False

    if event == OrderEvent.CANCEL and from_status is not None:
        minimum = CANCEL_MINIMUM_ROLE.get(OrderStatus(from_status))
        if minimum is None:
            # Not cancellable from here at all; legality is decided elsewhere
            return True
        return role_at_least(role, minimum)

    return True


def allowed_events(role: StaffRole, status: OrderStatus) -> list[OrderEvent]:
    """Events ``role`` could legally fire on an order in ``status``."""
    return [
        event for event in OrderEvent
        if next_status(OrderStatus(status), event) is not None
        and can_perform(role, event, status)
    ]
