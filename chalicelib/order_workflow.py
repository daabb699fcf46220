"""
Order status state machine.

PENDING -> APPROVED -> PREPARING -> READY -> SERVED
PENDING -> REJECTED
PENDING | APPROVED | PREPARING | READY -> CANCELLED

SERVED, REJECTED and CANCELLED are terminal.
"""
from datetime import datetime
from typing import Dict, Optional, Tuple

from chalicelib.utils.exceptions import InvalidStatusTransition, ValidationException

PENDING = 'PENDING'
APPROVED = 'APPROVED'
PREPARING = 'PREPARING'
READY = 'READY'
SERVED = 'SERVED'
REJECTED = 'REJECTED'
CANCELLED = 'CANCELLED'

ORDER_STATUSES = (PENDING, APPROVED, PREPARING, READY, SERVED, REJECTED, CANCELLED)
TERMINAL_STATUSES = (SERVED, REJECTED, CANCELLED)
ACTIVE_STATUSES = (PENDING, APPROVED, PREPARING, READY)

TRANSITIONS = {
    PENDING: (APPROVED, REJECTED, CANCELLED),
    APPROVED: (PREPARING, CANCELLED),
    PREPARING: (READY, CANCELLED),
    READY: (SERVED, CANCELLED),
    SERVED: (),
    REJECTED: (),
    CANCELLED: ()
}

# status -> attribute stamped with the transition time
TIMESTAMP_FIELDS = {
    APPROVED: 'approved_at',
    SERVED: 'completed_at'
}

# status -> attribute keeping the optional reason
REASON_FIELDS = {
    REJECTED: 'rejection_reason',
    CANCELLED: 'cancellation_reason'
}


def validate_status(status) -> str:
    if status not in ORDER_STATUSES:
        raise ValidationException(f'Invalid status {status}, expected one of {list(ORDER_STATUSES)}')
    return status


def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in TRANSITIONS.get(current_status, ())


def check_transition(current_status: str, new_status: str):
    validate_status(new_status)
    if not can_transition(current_status, new_status):
        raise InvalidStatusTransition(f'Order status cannot change from {current_status} to {new_status}')


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def get_transition_fields(new_status: str, changed_by: str, reason: Optional[str] = None,
                          now: Optional[datetime] = None) -> Tuple[Dict, Dict]:
    """
    Attributes written together with a status change and the history entry describing it.
    """
    timestamp = (now or datetime.now()).isoformat(timespec="seconds")
    fields = {
        'status_': new_status,
        'date_updated': timestamp,
        'updated_by': changed_by
    }
    if new_status in TIMESTAMP_FIELDS:
        fields[TIMESTAMP_FIELDS[new_status]] = timestamp
    if reason and new_status in REASON_FIELDS:
        fields[REASON_FIELDS[new_status]] = reason
    history_entry = {'status': new_status, 'date': timestamp, 'changed_by': changed_by}
    if reason:
        history_entry['reason'] = reason
    return fields, history_entry
