# vtl-backend/bus/tasks.py
import logging

from celery import shared_task

from . import services

logger = logging.getLogger("vtl.bus")


@shared_task
def deliver_event(delivery_id: int):
    """
    One delivery attempt. Failures are recorded on the delivery row and
    retried by `redeliver_due`, not by Celery's own retry mechanism.
    """
    return services.deliver(delivery_id)


@shared_task
def redeliver_due(limit: int = 100):
    """
    Beat sweep: attempt every pending delivery whose next_attempt_at passed.
    """
    ids = services.due_deliveries(limit=limit)
    outcomes = {}
    for delivery_id in ids:
        outcome = services.deliver(delivery_id)
        outcomes[outcome] = outcomes.get(outcome, 0) + 1

    if ids:
        logger.info(f"Redelivery sweep: {len(ids)} due, outcomes={outcomes}")
    return outcomes
