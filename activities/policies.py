# vtl-backend/activities/policies.py
"""
Centralized authorization for the activity lifecycle.

`authorize()` is a pure function of (role, attributes, from_status, action):
no database access, so it can be tested on its own. ActivityPolicy builds
the attributes from real objects and answers the non-transition questions
(who may view, who may upload proof).
"""
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from users.models import User
from . import state_machine as sm
from .models import Activity


ROLE_STUDENT = User.ROLE_STUDENT
ROLE_VERIFIER = User.ROLE_VERIFIER
ROLE_ADMIN = User.ROLE_ADMIN


@dataclass(frozen=True)
class Actor:
    """
    Identity context supplied with every call: trusted, never issued here.
    """
    tenant_id: int
    user_id: int
    role: str
    department: str = ""

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(
            tenant_id=user.tenant_id,
            user_id=user.id,
            role=user.effective_role,
            department=user.department or "",
        )


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    def __bool__(self):
        return self.allowed


ALLOW = Decision(True)


def authorize(role: str, attributes: Mapping[str, bool], from_status: str, action: str) -> Decision:
    """
    Decide whether an actor with `role` and `attributes` may perform `action`
    on an activity currently in `from_status`.

    Recognised attributes (missing ones count as False):
      same_tenant       actor and activity belong to the same tenant
      is_owner          actor is the activity's student
      has_assignment    the activity has an explicitly assigned verifier
      is_assigned       actor is that assigned verifier
      department_match  actor's department equals the activity's department
    """
    if not attributes.get("same_tenant"):
        return Decision(False, "Activity belongs to another tenant")

    if action in (sm.ACTION_SUBMIT, sm.ACTION_RESUBMIT):
        if not attributes.get("is_owner"):
            return Decision(False, "Only the owning student can submit this activity")
        return ALLOW

    if action == sm.ACTION_APPROVE:
        if role != ROLE_VERIFIER:
            return Decision(False, "Only verifiers can approve activities")
        if attributes.get("is_owner"):
            return Decision(False, "Verifiers cannot approve their own activities")
        if attributes.get("has_assignment"):
            if attributes.get("is_assigned"):
                return ALLOW
            return Decision(False, "Activity is assigned to another verifier")
        if attributes.get("department_match"):
            return ALLOW
        return Decision(False, "Verifier is not assigned to this activity's department")

    if action in (sm.ACTION_REJECT, sm.ACTION_REQUEST_INFO):
        if role != ROLE_VERIFIER:
            return Decision(False, f"Only verifiers can {action.replace('_', ' ')}")
        if attributes.get("is_owner"):
            return Decision(False, "Verifiers cannot review their own activities")
        return ALLOW

    if action == sm.ACTION_WITHDRAW:
        if role != ROLE_ADMIN:
            return Decision(False, "Only admins can withdraw activities")
        return ALLOW

    return Decision(False, f"Unknown action: {action}")


class ActivityPolicy:
    """
    Object-level checks. All methods return a Decision or bool.
    """

    @staticmethod
    def attributes_for(actor: Actor, activity: Activity) -> dict:
        department = (activity.department or "").strip().lower()
        return {
            "same_tenant": actor.tenant_id == activity.tenant_id,
            "is_owner": actor.user_id == activity.student_id,
            "has_assignment": activity.assigned_verifier_id is not None,
            "is_assigned": activity.assigned_verifier_id == actor.user_id,
            "department_match": bool(department)
            and department == (actor.department or "").strip().lower(),
        }

    @staticmethod
    def can_transition(actor: Actor, activity: Activity, action: str) -> Decision:
        attributes = ActivityPolicy.attributes_for(actor, activity)
        return authorize(actor.role, attributes, activity.status, action)

    @staticmethod
    def can_view(actor: Actor, activity: Activity) -> bool:
        if actor.tenant_id != activity.tenant_id:
            return False
        if actor.role in (ROLE_VERIFIER, ROLE_ADMIN):
            return True
        return actor.user_id == activity.student_id

    @staticmethod
    def can_edit_proofs(actor: Actor, activity: Activity) -> Decision:
        if actor.tenant_id != activity.tenant_id:
            return Decision(False, "Activity belongs to another tenant")
        if actor.user_id != activity.student_id:
            return Decision(False, "Only the owning student can attach proof")
        return ALLOW

    @staticmethod
    def can_create_for(actor: Actor, student) -> Tuple[bool, str]:
        """Students create their own activities; admins may create on behalf."""
        if student.tenant_id != actor.tenant_id:
            return False, "Student belongs to another tenant"
        if student.id == actor.user_id:
            return True, ""
        if actor.role == ROLE_ADMIN:
            return True, ""
        return False, "You can only create activities for yourself"

    @staticmethod
    def can_operate(actor: Optional[Actor]) -> bool:
        """Operator surfaces: dead letters, consistency checks."""
        return actor is not None and actor.role == ROLE_ADMIN
