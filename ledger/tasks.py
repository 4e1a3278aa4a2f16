# vtl-backend/ledger/tasks.py
import logging

from celery import shared_task

from activities.models import Activity
from core.exceptions import LedgerInconsistency
from .services import ledger

logger = logging.getLogger("vtl.ledger")


@shared_task
def scan_ledger_integrity(tenant_id=None):
    """
    Periodic reconstructibility check. Every detected inconsistency is
    recorded as an operational fact by verify_consistency; nothing is repaired.

    Returns a summary dict so beat/flower show what happened.
    """
    activities = Activity.objects.all().only("id", "tenant_id")
    if tenant_id is not None:
        activities = activities.filter(tenant_id=tenant_id)

    checked = 0
    inconsistent = []
    for activity in activities.iterator():
        checked += 1
        try:
            ledger.verify_consistency(activity.tenant_id, activity.pk)
        except LedgerInconsistency:
            inconsistent.append(str(activity.pk))

    logger.info(f"Ledger integrity scan: checked={checked}, inconsistent={len(inconsistent)}")
    return {"checked": checked, "inconsistent": inconsistent}
