# vtl-backend/activities/engine.py
"""
Verification Engine.

The only code path that changes Activity.status. Every transition is:

    1. read activity + version (the concurrency token)
    2. table check -> InvalidTransition
    3. authorize -> Unauthorized
    4. preconditions (+ proof integrity on submit/resubmit)
    5. one transaction: conditional UPDATE on version, ledger append,
       outbox event

Events are delivered only after the transaction commits.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional
import logging
import time

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import OperationalError, transaction
from django.utils import timezone

from bus.services import publish
from core.exceptions import (
    ConcurrentModification,
    InvalidTransition,
    LedgerError,
    NotFound,
    Timeout,
    Unauthorized,
)
from ledger.models import TransitionRecord
from ledger.services import ledger
from . import state_machine as sm
from .models import Activity
from .policies import Actor, ActivityPolicy
from .proofs import verify_proofs

logger = logging.getLogger("vtl.activities")


@dataclass
class TransitionResult:
    activity_id: str
    status: str
    sequence_no: int

    def as_dict(self) -> dict:
        return {
            "activity_id": self.activity_id,
            "status": self.status,
            "sequence_no": self.sequence_no,
        }


def load_activity(tenant_id, activity_id) -> Activity:
    try:
        return Activity.objects.get(pk=activity_id, tenant_id=tenant_id)
    except (Activity.DoesNotExist, ValueError, ValidationError):
        raise NotFound("Activity not found.", activity_id=str(activity_id))


def check_preconditions(activity: Activity, action: str, comment: str = "") -> None:
    if action == sm.ACTION_SUBMIT and not activity.has_evidence:
        raise InvalidTransition(
            "Attach at least one proof or record a proof waiver before submitting.",
            activity_id=str(activity.pk),
            action=action,
        )

    if action == sm.ACTION_REJECT and not (comment or "").strip():
        raise InvalidTransition(
            "A comment is required when rejecting an activity.",
            activity_id=str(activity.pk),
            action=action,
        )

    if action == sm.ACTION_RESUBMIT:
        since = activity.last_transition_at
        new_proofs = activity.proof_refs.all()
        if since is not None:
            new_proofs = new_proofs.filter(uploaded_at__gt=since)
        if not new_proofs.exists():
            raise InvalidTransition(
                "Upload new proof before resubmitting.",
                activity_id=str(activity.pk),
                action=action,
            )


def _event_payload(activity: Activity, action: str, from_status: str, to_status: str, actor: Actor, comment: str) -> dict:
    return {
        "action": action,
        "from_status": from_status,
        "status": to_status,
        "actor_id": actor.user_id,
        "actor_role": actor.role,
        "comment": comment,
        "student_id": activity.student_id,
        "assigned_verifier_id": activity.assigned_verifier_id,
        "title": activity.title,
        "type": activity.type,
        "department": activity.department,
    }


def _apply(tenant_id, activity_id, action: str, actor: Actor, comment: str, expected_sequence_no: Optional[int]) -> TransitionResult:
    activity = load_activity(tenant_id, activity_id)
    loaded_version = activity.version
    from_status = activity.status

    if expected_sequence_no is not None and int(expected_sequence_no) != loaded_version:
        raise ConcurrentModification(
            activity_id=str(activity.pk),
            expected_sequence_no=expected_sequence_no,
            current_sequence_no=loaded_version,
        )

    allowed, reason = sm.can_transition(from_status, action)
    if not allowed:
        raise InvalidTransition(reason, activity_id=str(activity.pk), status=from_status, action=action)

    decision = ActivityPolicy.can_transition(actor, activity, action)
    if not decision:
        raise Unauthorized(decision.reason, activity_id=str(activity.pk), action=action)

    check_preconditions(activity, action, comment)

    if action in (sm.ACTION_SUBMIT, sm.ACTION_RESUBMIT):
        verify_proofs(activity)

    to_status = sm.next_status(from_status, action)
    sequence_no = loaded_version + 1
    now = timezone.now()

    # Compare-and-commit on the version token
    updated = Activity.objects.filter(pk=activity.pk, version=loaded_version).update(
        status=to_status,
        version=sequence_no,
        last_transition_at=now,
    )
    if updated == 0:
        raise ConcurrentModification(activity_id=str(activity.pk), expected_sequence_no=loaded_version)

    record = TransitionRecord(
        tenant_id=activity.tenant_id,
        activity=activity,
        sequence_no=sequence_no,
        actor_id=actor.user_id,
        actor_role=actor.role,
        from_status=from_status,
        to_status=to_status,
        action=action,
        comment=comment or "",
        recorded_at=now,
    )
    ledger.append(record)

    activity.status = to_status
    activity.version = sequence_no
    activity.last_transition_at = now

    publish(
        activity.tenant,
        activity,
        sm.topic_for(action),
        sequence_no,
        _event_payload(activity, action, from_status, to_status, actor, comment or ""),
    )

    return TransitionResult(activity_id=str(activity.pk), status=to_status, sequence_no=sequence_no)


def apply(tenant_id, activity_id, action: str, actor: Actor, comment: str = "", expected_sequence_no: Optional[int] = None) -> TransitionResult:
    """
    Perform one transition. Returns {status, sequence_no}.

    Raises InvalidTransition, Unauthorized, ConcurrentModification,
    ProofTampered, NotFound or Timeout; on any of them nothing is written.
    """
    timeout = settings.VTL_TRANSITION_TIMEOUT_SECONDS
    started = time.monotonic()

    try:
        with transaction.atomic():
            result = _apply(tenant_id, activity_id, action, actor, comment, expected_sequence_no)
            elapsed = time.monotonic() - started
            if elapsed > timeout:
                raise Timeout(activity_id=str(activity_id), elapsed=round(elapsed, 3))
    except OperationalError as exc:
        if "lock" in str(exc).lower():
            logger.warning(f"Transition lock timeout: activity={activity_id}, action={action}: {exc}")
            raise Timeout(activity_id=str(activity_id))
        raise
    except LedgerError as exc:
        logger.info(
            f"Transition refused: activity={activity_id}, action={action}, "
            f"actor={actor.user_id}, code={exc.code}: {exc.detail}"
        )
        raise

    logger.info(
        f"Transition committed: activity={result.activity_id}, action={action}, "
        f"status={result.status}, seq={result.sequence_no}, actor={actor.user_id}"
    )
    return result


def bulk_apply(tenant_id, activity_ids: Iterable, action: str, actor: Actor, comment: str = "") -> List[dict]:
    """
    Independent single-activity transitions. One failure never affects the
    others; each id gets its own result entry.
    """
    results = []
    seen = set()
    for activity_id in activity_ids:
        key = str(activity_id)
        if key in seen:
            continue
        seen.add(key)

        try:
            result = apply(tenant_id, activity_id, action, actor, comment=comment)
        except LedgerError as exc:
            results.append({"activity_id": key, "ok": False, "error": exc.as_dict()})
            continue
        results.append({"ok": True, **result.as_dict()})
    return results
