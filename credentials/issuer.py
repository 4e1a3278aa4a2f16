# vtl-backend/credentials/issuer.py
"""
Credential Issuer: event consumer for activity.verified / activity.withdrawn.

Idempotent under redelivery:
- verified: no-op when an active credential exists or the activity is no
  longer Verified
- withdrawn: no-op when nothing active is left to revoke
"""
from typing import Optional
import logging
import uuid

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from activities.models import Activity
from activities.proofs import verify_proofs
from bus.services import publish
from core import constants
from core.exceptions import NotFound
from ledger.models import TransitionRecord
from ledger.services import ledger
from users.models import User
from .models import Credential
from .signing import load_issuing_key, payload_hash, verify_signature

logger = logging.getLogger("vtl.credentials")


def _locked_activity(tenant_id, activity_id) -> Activity:
    try:
        return (
            Activity.objects
            .select_for_update()
            .select_related("tenant", "student")
            .get(pk=activity_id, tenant_id=tenant_id)
        )
    except Activity.DoesNotExist:
        raise NotFound("Activity not found.", activity_id=str(activity_id))


def build_payload(credential_id, activity: Activity, verified_record: Optional[TransitionRecord], key_id: str, issued_at) -> dict:
    student = activity.student
    return {
        "credential_id": str(credential_id),
        "tenant_id": activity.tenant_id,
        "tenant": activity.tenant.slug,
        "activity_id": str(activity.pk),
        "activity_type": activity.type,
        "title": activity.title,
        "department": activity.department,
        "student_id": student.id,
        "student_name": student.get_full_name() or student.username,
        "verifier_id": verified_record.actor_id if verified_record else None,
        "verified_sequence_no": verified_record.sequence_no if verified_record else activity.version,
        "verified_at": verified_record.recorded_at.isoformat() if verified_record else None,
        "proof_hashes": [p.content_hash for p in activity.proof_refs.order_by("position")],
        "proof_waived": activity.proof_waived,
        "issued_at": issued_at.isoformat(),
        "key_id": key_id,
    }


def issue(tenant_id, activity_id) -> Optional[Credential]:
    """
    Issue the credential for a Verified activity.

    Raises ProofTampered (not retryable) or IssuanceUnavailable (retryable).
    Returns the active credential, or None when the activity is not Verified.
    """
    with transaction.atomic():
        activity = _locked_activity(tenant_id, activity_id)

        if activity.status != Activity.STATUS_VERIFIED:
            logger.info(f"Issuance skipped, activity not verified: activity={activity.pk}, status={activity.status}")
            return None

        existing = Credential.objects.filter(activity=activity, revoked_at__isnull=True).first()
        if existing is not None:
            logger.info(f"Issuance skipped, credential exists: activity={activity.pk}, credential={existing.pk}")
            return existing

        verify_proofs(activity)
        key = load_issuing_key(activity.tenant.slug)

        verified_record = (
            TransitionRecord.objects
            .filter(activity=activity, to_status=Activity.STATUS_VERIFIED)
            .order_by("-sequence_no")
            .first()
        )

        credential_id = uuid.uuid4()
        issued_at = timezone.now()
        payload = build_payload(credential_id, activity, verified_record, key.key_id, issued_at)
        digest = payload_hash(payload)

        credential = Credential.objects.create(
            id=credential_id,
            tenant=activity.tenant,
            activity=activity,
            subject=activity.student,
            issued_at=issued_at,
            payload=payload,
            payload_hash=digest,
            signature=key.sign_hash(digest),
            key_id=key.key_id,
            verify_key=key.verify_key_hex,
        )

        ledger.record_fact(
            constants.FACT_CREDENTIAL_ISSUED,
            tenant=activity.tenant,
            activity=activity,
            detail={
                "credential_id": str(credential.pk),
                "payload_hash": digest,
                "key_id": key.key_id,
            },
        )
        publish(
            activity.tenant,
            activity,
            constants.TOPIC_CREDENTIAL_ISSUED,
            payload["verified_sequence_no"],
            {"credential_id": str(credential.pk), "student_id": activity.student_id, "title": activity.title},
        )

    logger.info(f"Credential issued: credential={credential.pk}, activity={activity.pk}, key={key.key_id}")
    return credential


def revoke(tenant_id, activity_id, actor=None, reason: str = "", sequence_no: Optional[int] = None) -> Optional[Credential]:
    """
    Revoke the active credential of a withdrawn activity. Returns the
    revoked credential, or None when there was nothing to revoke.
    """
    with transaction.atomic():
        activity = _locked_activity(tenant_id, activity_id)
        credential = (
            Credential.objects
            .select_for_update()
            .filter(activity=activity, revoked_at__isnull=True)
            .first()
        )
        if credential is None:
            logger.info(f"Revocation skipped, no active credential: activity={activity.pk}")
            return None

        credential.revoked_at = timezone.now()
        credential.revocation_reason = (reason or "Activity withdrawn")[:255]
        credential.save(update_fields=["revoked_at", "revocation_reason"])

        ledger.record_fact(
            constants.FACT_CREDENTIAL_REVOKED,
            tenant=activity.tenant,
            activity=activity,
            actor=actor,
            detail={"credential_id": str(credential.pk), "reason": credential.revocation_reason},
        )
        publish(
            activity.tenant,
            activity,
            constants.TOPIC_CREDENTIAL_REVOKED,
            sequence_no if sequence_no is not None else activity.version,
            {"credential_id": str(credential.pk), "student_id": activity.student_id, "title": activity.title},
        )

    logger.info(f"Credential revoked: credential={credential.pk}, activity={activity.pk}")
    return credential


def handle_event(envelope: dict) -> None:
    topic = envelope["topic"]
    tenant_id = envelope["tenant_id"]
    activity_id = envelope["activity_id"]

    if topic == constants.TOPIC_ACTIVITY_VERIFIED:
        issue(tenant_id, activity_id)
    elif topic == constants.TOPIC_ACTIVITY_WITHDRAWN:
        payload = envelope.get("payload") or {}
        revoke(
            tenant_id,
            activity_id,
            actor=User.objects.filter(pk=payload.get("actor_id")).first(),
            reason=payload.get("comment") or "Activity withdrawn",
            sequence_no=envelope["sequence_no"],
        )
    else:
        logger.warning(f"Credential issuer ignoring topic {topic}")


# ---------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------

def current_credential(activity: Activity) -> Optional[Credential]:
    """The active credential, else the most recently revoked one."""
    return (
        Credential.objects
        .filter(activity=activity)
        .order_by(F("revoked_at").asc(nulls_first=True), "-issued_at")
        .first()
    )


def verify_credential(credential: Credential) -> dict:
    """
    Recompute the payload hash and check the signature against the stored
    public key. Revocation is reported separately from cryptographic validity.
    """
    recomputed = payload_hash(credential.payload)
    hash_matches = recomputed == credential.payload_hash
    signature_valid = hash_matches and verify_signature(
        credential.verify_key, credential.payload_hash, credential.signature
    )
    return {
        "credential_id": str(credential.pk),
        "valid": signature_valid and credential.revoked_at is None,
        "signature_valid": signature_valid,
        "hash_matches": hash_matches,
        "revoked": credential.revoked_at is not None,
        "revoked_at": credential.revoked_at.isoformat() if credential.revoked_at else None,
        "key_id": credential.key_id,
        "issued_at": credential.issued_at.isoformat(),
        "payload": credential.payload,
    }
