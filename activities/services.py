# vtl-backend/activities/services.py
"""
Activity creation, proof attachment and tenant-scoped reads.
Status changes go through activities.engine, never through here.
"""
from typing import Iterable, Optional
import logging

from django.db import IntegrityError, transaction
from django.db.models import Max

from bus.services import publish
from core import constants
from core.exceptions import ConcurrentModification, InvalidTransition, NotFound, Unauthorized
from users.models import User
from . import engine
from . import state_machine as sm
from .models import Activity, ProofRef
from .policies import Actor, ActivityPolicy
from .proofs import ProofStore, get_proof_store

logger = logging.getLogger("vtl.activities")


# ---------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------

def visible_activities(actor: Actor, status: Optional[str] = None):
    """Students see their own; verifiers and admins see the whole tenant."""
    qs = Activity.objects.filter(tenant_id=actor.tenant_id).select_related("student", "assigned_verifier")
    if actor.role == User.ROLE_STUDENT:
        qs = qs.filter(student_id=actor.user_id)
    if status:
        qs = qs.filter(status=status)
    return qs


def get_visible_activity(actor: Actor, activity_id) -> Activity:
    activity = engine.load_activity(actor.tenant_id, activity_id)
    if not ActivityPolicy.can_view(actor, activity):
        raise Unauthorized("You cannot view this activity.", activity_id=str(activity.pk))
    return activity


# ---------------------------------------------------------------------
# Proofs
# ---------------------------------------------------------------------

def _add_proof(activity: Activity, data: bytes, media_type: str, original_name: str, uploaded_by_id, store: ProofStore) -> ProofRef:
    digest = store.put(data)
    position = (activity.proof_refs.aggregate(top=Max("position"))["top"] or 0) + 1
    return ProofRef.objects.create(
        activity=activity,
        position=position,
        content_hash=digest,
        media_type=media_type or "application/octet-stream",
        size=len(data),
        original_name=original_name or "",
        uploaded_by_id=uploaded_by_id,
    )


def attach_proof(actor: Actor, activity_id, data: bytes, media_type: str = "", original_name: str = "", store: ProofStore = None) -> ProofRef:
    """
    Store proof bytes and reference them from the activity. Only the owner,
    and only while the activity is Draft or PendingInfo.
    """
    store = store or get_proof_store()

    try:
        with transaction.atomic():
            activity = engine.load_activity(actor.tenant_id, activity_id)
            # Serialize position allocation per activity
            activity = Activity.objects.select_for_update().get(pk=activity.pk)

            decision = ActivityPolicy.can_edit_proofs(actor, activity)
            if not decision:
                raise Unauthorized(decision.reason, activity_id=str(activity.pk))

            if not activity.proofs_editable:
                raise InvalidTransition(
                    f"Proof cannot be changed while the activity is {activity.get_status_display()}.",
                    activity_id=str(activity.pk),
                    status=activity.status,
                )

            proof = _add_proof(activity, data, media_type, original_name, actor.user_id, store)
    except IntegrityError:
        raise ConcurrentModification("Another proof upload raced this one. Retry.", activity_id=str(activity_id))

    logger.info(
        f"Proof attached: activity={proof.activity_id}, position={proof.position}, "
        f"hash={proof.content_hash}, size={proof.size}"
    )
    return proof


# ---------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------

def create_activity(
    actor: Actor,
    student: User,
    title: str,
    type: str = Activity.TYPE_OTHER,
    description: str = "",
    department: str = "",
    assigned_verifier: Optional[User] = None,
    proofs: Iterable = (),
    proof_waived: bool = False,
    waiver_reason: str = "",
    external_ref: Optional[str] = None,
    submit: bool = False,
    store: ProofStore = None,
) -> Activity:
    """
    Create an activity in Draft, optionally with proofs, and optionally submit
    it in the same transaction (Draft -> Pending, sequence_no 1).

    `proofs` is an iterable of (bytes, media_type, original_name).
    """
    allowed, reason = ActivityPolicy.can_create_for(actor, student)
    if not allowed:
        raise Unauthorized(reason)

    if assigned_verifier is not None:
        if assigned_verifier.tenant_id != actor.tenant_id or assigned_verifier.role != User.ROLE_VERIFIER:
            raise NotFound("Assigned verifier not found in this tenant.")

    store = store or get_proof_store()

    with transaction.atomic():
        activity = Activity.objects.create(
            tenant_id=actor.tenant_id,
            student=student,
            type=type,
            title=title,
            description=description or "",
            department=department or student.department or "",
            assigned_verifier=assigned_verifier,
            proof_waived=proof_waived,
            waiver_reason=waiver_reason or "",
            external_ref=external_ref,
            created_by_id=actor.user_id,
        )

        for data, media_type, original_name in proofs:
            _add_proof(activity, data, media_type, original_name, actor.user_id, store)

        publish(
            activity.tenant,
            activity,
            constants.TOPIC_ACTIVITY_CREATED,
            0,
            {
                "student_id": student.id,
                "title": activity.title,
                "type": activity.type,
                "department": activity.department,
                "created_by": actor.user_id,
                "external_ref": external_ref,
            },
        )

        if submit:
            result = engine.apply(
                actor.tenant_id,
                activity.pk,
                sm.ACTION_SUBMIT,
                actor,
                expected_sequence_no=0,
            )
            activity.status = result.status
            activity.version = result.sequence_no
            activity.refresh_from_db(fields=["last_transition_at"])

    logger.info(
        f"Activity created: id={activity.pk}, tenant={activity.tenant_id}, "
        f"student={student.id}, status={activity.status}"
    )
    return activity
