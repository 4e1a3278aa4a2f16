# vtl-backend/activities/integrations.py
"""
Inbound LMS/ERP integration.

Requests are signed with the tenant's shared secret:

    X-VTL-Timestamp: <unix seconds>
    X-VTL-Signature: hex(HMAC-SHA256(secret, "<timestamp>." + raw_body))

Any failure is InvalidSignature, recorded in the Audit Ledger and never
retried. No activity is created for a rejected request.
"""
from typing import Optional, Tuple
import hashlib
import hmac
import logging
import time

from django.conf import settings
from django.db import IntegrityError, transaction

from core import constants
from core.exceptions import InvalidSignature, NotFound
from core.models import Tenant
from ledger.services import ledger
from users.models import User
from .models import Activity
from .policies import Actor
from .services import create_activity

logger = logging.getLogger("vtl.integrations")

TIMESTAMP_HEADER = "X-VTL-Timestamp"
SIGNATURE_HEADER = "X-VTL-Signature"


def compute_signature(secret: str, timestamp: str, body: bytes) -> str:
    message = timestamp.encode() + b"." + body
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def _reject(reason: str, tenant: Optional[Tenant], tenant_slug: str, remote_addr: str = "") -> InvalidSignature:
    logger.warning(f"Integration request rejected: tenant={tenant_slug}, reason={reason}, remote={remote_addr}")
    ledger.record_fact(
        constants.FACT_INTEGRATION_REJECTED,
        tenant=tenant,
        detail={"tenant_slug": tenant_slug, "reason": reason, "remote_addr": remote_addr},
    )
    return InvalidSignature(tenant_slug=tenant_slug)


def verify_request(tenant_slug: str, timestamp: Optional[str], signature: Optional[str], body: bytes,
                   remote_addr: str = "", now: Optional[float] = None) -> Tenant:
    """
    Authenticate an inbound request and return its tenant.
    The reason for a rejection is logged and recorded, not returned.
    """
    tenant = Tenant.objects.filter(slug=tenant_slug, is_active=True).first()
    if tenant is None or not tenant.integration_secret:
        raise _reject("unknown tenant", None, tenant_slug, remote_addr)

    if not timestamp or not signature:
        raise _reject("missing signature headers", tenant, tenant_slug, remote_addr)

    try:
        sent_at = int(timestamp)
    except (TypeError, ValueError):
        raise _reject("malformed timestamp", tenant, tenant_slug, remote_addr)

    now = time.time() if now is None else now
    if abs(now - sent_at) > settings.VTL_INTEGRATION_MAX_SKEW_SECONDS:
        raise _reject("timestamp outside allowed skew", tenant, tenant_slug, remote_addr)

    expected = compute_signature(tenant.integration_secret, timestamp, body)
    if not hmac.compare_digest(expected, signature.strip().lower()):
        raise _reject("signature mismatch", tenant, tenant_slug, remote_addr)

    return tenant


def create_from_integration(tenant: Tenant, data: dict) -> Tuple[Activity, bool]:
    """
    Create (and optionally submit) an activity on behalf of a student.

    Idempotent on (tenant, external_ref): a repeated request returns the
    existing activity with created=False.
    """
    external_ref = data["external_ref"]
    existing = Activity.objects.filter(tenant=tenant, external_ref=external_ref).first()
    if existing is not None:
        logger.info(f"Integration replay: tenant={tenant.slug}, external_ref={external_ref}")
        return existing, False

    student = User.objects.filter(
        tenant=tenant,
        username=data["student"],
        role=User.ROLE_STUDENT,
    ).first()
    if student is None:
        raise NotFound("Student not found in this tenant.", student=data["student"])

    # The external system acts on the student's behalf
    actor = Actor.from_user(student)
    try:
        with transaction.atomic():
            activity = create_activity(
                actor,
                student,
                title=data["title"],
                type=data.get("type") or Activity.TYPE_OTHER,
                description=data.get("description", ""),
                department=data.get("department", ""),
                proof_waived=data.get("proof_waived", False),
                waiver_reason=data.get("waiver_reason", ""),
                external_ref=external_ref,
                submit=data.get("submit", False),
            )
    except IntegrityError:
        # Concurrent request with the same external_ref won
        return Activity.objects.get(tenant=tenant, external_ref=external_ref), False

    logger.info(f"Integration created activity: tenant={tenant.slug}, id={activity.pk}, external_ref={external_ref}")
    return activity, True
