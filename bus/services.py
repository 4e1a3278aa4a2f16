# vtl-backend/bus/services.py
"""
Event bus: transactional outbox with per-consumer delivery rows.

Guarantees
----------
- at-least-once delivery (consumers must be idempotent)
- per-activity ordering per consumer: a delivery waits while any earlier
  event of the same activity is not yet delivered to that consumer
- no ordering across activities
- bounded retries with exponential backoff, then a dead letter that is
  recorded in the Audit Ledger and kept for operator replay
"""
from datetime import timedelta
from typing import Callable, List, Optional
import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django.utils.module_loading import import_string

from core import constants
from core.exceptions import InvalidTransition, LedgerError, NotFound
from ledger.services import ledger
from .models import DomainEvent, EventDelivery

logger = logging.getLogger("vtl.bus")


# ---------------------------------------------------------------------
# Consumer registry
# ---------------------------------------------------------------------

def consumers_for(topic: str) -> List[str]:
    return [
        name
        for name, conf in settings.VTL_EVENT_CONSUMERS.items()
        if topic in conf.get("topics", [])
    ]


def get_handler(consumer: str) -> Callable[[dict], None]:
    try:
        conf = settings.VTL_EVENT_CONSUMERS[consumer]
    except KeyError:
        raise LookupError(f"Unknown event consumer: {consumer}")
    return import_string(conf["handler"])


def backoff_seconds(attempts: int) -> int:
    """min(base * 2^(attempts-1), max) for the attempt that just failed."""
    base = settings.VTL_DELIVERY_BACKOFF_BASE_SECONDS
    ceiling = settings.VTL_DELIVERY_BACKOFF_MAX_SECONDS
    return min(base * (2 ** max(attempts - 1, 0)), ceiling)


# ---------------------------------------------------------------------
# Publish
# ---------------------------------------------------------------------

def publish(tenant, activity, topic: str, sequence_no: int, payload: Optional[dict] = None) -> DomainEvent:
    """
    Write an outbox event plus one delivery per subscribed consumer, inside
    the caller's transaction. Delivery is scheduled only after commit.

    Publishing the same (activity, topic, sequence_no) twice returns the
    existing event and creates no new deliveries.
    """
    if not constants.is_valid_topic(topic):
        raise ValueError(f"Unknown topic: {topic}")

    with transaction.atomic():
        event, created = DomainEvent.objects.get_or_create(
            activity=activity,
            topic=topic,
            sequence_no=sequence_no,
            defaults={"tenant": tenant, "payload": payload or {}},
        )
        if not created:
            logger.info(f"Event already published: {event}")
            return event

        consumers = consumers_for(topic)
        EventDelivery.objects.bulk_create(
            [EventDelivery(event=event, consumer=name) for name in consumers]
        )

    event_id = event.id
    transaction.on_commit(lambda: schedule_event(event_id))
    logger.info(f"Event published: {event} consumers={consumers}")
    return event


def enqueue(delivery_id: int) -> bool:
    """
    Hand one delivery to Celery. A broker failure is logged, not raised:
    the row stays pending and `redeliver_due` picks it up.
    """
    from .tasks import deliver_event

    try:
        deliver_event.delay(delivery_id)
    except Exception as exc:
        logger.warning(f"Could not enqueue delivery={delivery_id}, left for the sweep: {exc}")
        return False
    return True


def schedule_event(event_id: int) -> None:
    ids = EventDelivery.objects.filter(
        event_id=event_id, status=EventDelivery.STATUS_PENDING
    ).values_list("id", flat=True)
    for delivery_id in list(ids):
        enqueue(delivery_id)


# ---------------------------------------------------------------------
# Deliver
# ---------------------------------------------------------------------

def _earlier_undelivered(delivery: EventDelivery) -> bool:
    return (
        EventDelivery.objects.filter(
            consumer=delivery.consumer,
            event__activity_id=delivery.event.activity_id,
            event_id__lt=delivery.event_id,
        )
        .exclude(status=EventDelivery.STATUS_DELIVERED)
        .exists()
    )


def _schedule_followers(delivery: EventDelivery) -> None:
    """Once a delivery lands, later deferred ones for the same activity can go."""
    follower_ids = list(
        EventDelivery.objects.filter(
            consumer=delivery.consumer,
            event__activity_id=delivery.event.activity_id,
            event_id__gt=delivery.event_id,
            status=EventDelivery.STATUS_PENDING,
        )
        .order_by("event_id")
        .values_list("id", flat=True)[:1]
    )
    for follower_id in follower_ids:
        transaction.on_commit(lambda pk=follower_id: enqueue(pk))


def deliver(delivery_id: int) -> str:
    """
    Run one delivery attempt. Returns a short outcome string:
    delivered | deferred | retry | dead_lettered | skipped | missing
    """
    with transaction.atomic():
        try:
            delivery = (
                EventDelivery.objects
                .select_for_update()
                .select_related("event", "event__tenant", "event__activity")
                .get(pk=delivery_id)
            )
        except EventDelivery.DoesNotExist:
            return "missing"

        if delivery.is_final:
            return "skipped"

        now = timezone.now()

        if _earlier_undelivered(delivery):
            # Ordering wait: no attempt consumed
            delivery.next_attempt_at = now + timedelta(seconds=settings.VTL_DELIVERY_BACKOFF_BASE_SECONDS)
            delivery.save(update_fields=["next_attempt_at"])
            logger.info(f"Delivery deferred behind earlier event: delivery={delivery.pk}, consumer={delivery.consumer}")
            return "deferred"

        envelope = delivery.event.envelope()

        # An unknown consumer or unimportable handler spends the retry budget too
        try:
            handler = get_handler(delivery.consumer)
            with transaction.atomic():
                handler(envelope)
        except Exception as exc:
            return _record_failure(delivery, exc, now)

        delivery.status = EventDelivery.STATUS_DELIVERED
        delivery.attempts += 1
        delivery.delivered_at = now
        delivery.last_error = ""
        delivery.save(update_fields=["status", "attempts", "delivered_at", "last_error"])
        _schedule_followers(delivery)

    logger.info(f"Delivered {delivery.event} to {delivery.consumer}")
    return "delivered"


def _record_failure(delivery: EventDelivery, exc: Exception, now) -> str:
    retryable = exc.retryable if isinstance(exc, LedgerError) else True
    delivery.attempts += 1
    delivery.last_error = f"{exc.__class__.__name__}: {exc}"[:2000]

    if not retryable or delivery.attempts >= settings.VTL_DELIVERY_MAX_ATTEMPTS:
        dead_letter(delivery, now=now)
        return "dead_lettered"

    delay = backoff_seconds(delivery.attempts)
    delivery.next_attempt_at = now + timedelta(seconds=delay)
    delivery.save(update_fields=["attempts", "last_error", "next_attempt_at"])
    logger.warning(
        f"Delivery failed, retry in {delay}s: delivery={delivery.pk}, consumer={delivery.consumer}, "
        f"attempt={delivery.attempts}, error={delivery.last_error}"
    )
    return "retry"


def dead_letter(delivery: EventDelivery, now=None) -> None:
    delivery.status = EventDelivery.STATUS_DEAD_LETTERED
    delivery.dead_lettered_at = now or timezone.now()
    delivery.save(update_fields=["status", "attempts", "last_error", "dead_lettered_at"])

    event = delivery.event
    ledger.record_fact(
        constants.FACT_DELIVERY_DEAD_LETTERED,
        tenant=event.tenant,
        activity=event.activity,
        detail={
            "delivery_id": delivery.pk,
            "consumer": delivery.consumer,
            "topic": event.topic,
            "sequence_no": event.sequence_no,
            "attempts": delivery.attempts,
            "error": delivery.last_error,
        },
    )
    logger.error(
        f"Delivery dead-lettered: delivery={delivery.pk}, consumer={delivery.consumer}, "
        f"event={event}, attempts={delivery.attempts}, error={delivery.last_error}"
    )


# ---------------------------------------------------------------------
# Sweep & replay
# ---------------------------------------------------------------------

def due_deliveries(now=None, limit: int = 100) -> List[int]:
    now = now or timezone.now()
    with transaction.atomic():
        return list(
            EventDelivery.objects
            .select_for_update(skip_locked=True)
            .filter(status=EventDelivery.STATUS_PENDING, next_attempt_at__lte=now)
            .order_by("event_id")
            .values_list("id", flat=True)[:limit]
        )


def dead_letters(tenant=None):
    qs = (
        EventDelivery.objects
        .filter(status=EventDelivery.STATUS_DEAD_LETTERED)
        .select_related("event")
        .order_by("-dead_lettered_at")
    )
    if tenant is not None:
        qs = qs.filter(event__tenant=tenant)
    return qs


def replay_dead_letter(delivery_id: int, actor=None, tenant=None) -> EventDelivery:
    """
    Operator replay: reset a dead-lettered delivery to pending with a fresh
    attempt budget and schedule it after commit.
    """
    with transaction.atomic():
        qs = EventDelivery.objects.select_for_update().select_related("event", "event__tenant", "event__activity")
        if tenant is not None:
            qs = qs.filter(event__tenant=tenant)
        try:
            delivery = qs.get(pk=delivery_id)
        except EventDelivery.DoesNotExist:
            raise NotFound("Delivery not found.", delivery_id=delivery_id)

        if delivery.status != EventDelivery.STATUS_DEAD_LETTERED:
            raise InvalidTransition(
                "Only dead-lettered deliveries can be replayed.",
                delivery_id=delivery.pk,
                status=delivery.status,
            )

        previous_error = delivery.last_error
        delivery.status = EventDelivery.STATUS_PENDING
        delivery.attempts = 0
        delivery.next_attempt_at = timezone.now()
        delivery.dead_lettered_at = None
        delivery.save(update_fields=["status", "attempts", "next_attempt_at", "dead_lettered_at"])

        event = delivery.event
        ledger.record_fact(
            constants.FACT_DELIVERY_REPLAYED,
            tenant=event.tenant,
            activity=event.activity,
            actor=actor,
            detail={
                "delivery_id": delivery.pk,
                "consumer": delivery.consumer,
                "topic": event.topic,
                "sequence_no": event.sequence_no,
                "previous_error": previous_error,
            },
        )

        transaction.on_commit(lambda: enqueue(delivery.pk))

    logger.info(f"Dead letter replayed: delivery={delivery.pk}, by={getattr(actor, 'pk', None)}")
    return delivery
