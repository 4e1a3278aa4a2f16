# vtl-backend/activities/state_machine.py
"""
Activity State Machine.

Fixed verification lifecycle:

    draft ──submit──> pending ──approve──────> verified ──┐
                        │ ├────reject───────> rejected ──┴─withdraw─> withdrawn
                        │ └────request_info─> pending_info
                        └<─────resubmit─────────┘

Any (status, action) pair not in TRANSITIONS is rejected with
InvalidTransition. Role checks live in activities.policies.
"""
from typing import Dict, List, Optional, Tuple

from core import constants
from .models import Activity


ACTION_SUBMIT = "submit"
ACTION_APPROVE = "approve"
ACTION_REJECT = "reject"
ACTION_REQUEST_INFO = "request_info"
ACTION_RESUBMIT = "resubmit"
ACTION_WITHDRAW = "withdraw"

ACTION_CHOICES = [
    (ACTION_SUBMIT, "Submit"),
    (ACTION_APPROVE, "Approve"),
    (ACTION_REJECT, "Reject"),
    (ACTION_REQUEST_INFO, "Request info"),
    (ACTION_RESUBMIT, "Resubmit"),
    (ACTION_WITHDRAW, "Withdraw"),
]

ALL_ACTIONS = [value for value, _ in ACTION_CHOICES]


# (from_status, action) -> to_status
TRANSITIONS: Dict[Tuple[str, str], str] = {
    (Activity.STATUS_DRAFT, ACTION_SUBMIT): Activity.STATUS_PENDING,
    (Activity.STATUS_PENDING, ACTION_APPROVE): Activity.STATUS_VERIFIED,
    (Activity.STATUS_PENDING, ACTION_REJECT): Activity.STATUS_REJECTED,
    (Activity.STATUS_PENDING, ACTION_REQUEST_INFO): Activity.STATUS_PENDING_INFO,
    (Activity.STATUS_PENDING_INFO, ACTION_RESUBMIT): Activity.STATUS_PENDING,
    (Activity.STATUS_VERIFIED, ACTION_WITHDRAW): Activity.STATUS_WITHDRAWN,
    (Activity.STATUS_REJECTED, ACTION_WITHDRAW): Activity.STATUS_WITHDRAWN,
}

# Domain event published when a transition commits
ACTION_TOPICS = {
    ACTION_SUBMIT: constants.TOPIC_ACTIVITY_SUBMITTED,
    ACTION_APPROVE: constants.TOPIC_ACTIVITY_VERIFIED,
    ACTION_REJECT: constants.TOPIC_ACTIVITY_REJECTED,
    ACTION_REQUEST_INFO: constants.TOPIC_ACTIVITY_INFO_REQUESTED,
    ACTION_RESUBMIT: constants.TOPIC_ACTIVITY_RESUBMITTED,
    ACTION_WITHDRAW: constants.TOPIC_ACTIVITY_WITHDRAWN,
}

# Every activity starts here; folding history begins from this status
INITIAL_STATUS = Activity.STATUS_DRAFT


def next_status(from_status: str, action: str) -> Optional[str]:
    """Return the target status, or None when the pair is not in the table."""
    return TRANSITIONS.get((from_status, action))


def can_transition(from_status: str, action: str) -> Tuple[bool, str]:
    """
    Check if `action` is legal from `from_status`.

    Returns (allowed, reason)
    """
    if action not in ALL_ACTIONS:
        return False, f"Unknown action: {action}"

    if (from_status, action) not in TRANSITIONS:
        return False, f"Cannot {action} an activity in status '{from_status}'"

    return True, ""


def get_allowed_actions(status: str) -> List[str]:
    """List of actions that are legal from `status` (ignoring roles)."""
    return [action for (source, action) in TRANSITIONS if source == status]


def topic_for(action: str) -> str:
    return ACTION_TOPICS[action]
