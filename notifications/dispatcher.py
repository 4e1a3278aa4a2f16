# notifications/dispatcher.py
"""
Notification Dispatcher: event consumer that turns activity and credential
events into in-app notifications (and emails).

Deduplicated by (user, "<topic>:<activity_id>:<sequence_no>"), so a
redelivered event is a no-op.
"""
import logging

from django.db import transaction

from activities.models import Activity
from core import constants
from .emails import send_notification_email
from .models import Notification

logger = logging.getLogger("vtl.notifications")


# topic -> (notification type, title template, body template)
MESSAGES = {
    constants.TOPIC_ACTIVITY_SUBMITTED: (
        Notification.TYPE_ACTIVITY_SUBMITTED,
        "Activity submitted: {title}",
        "\"{title}\" was submitted for verification.",
    ),
    constants.TOPIC_ACTIVITY_VERIFIED: (
        Notification.TYPE_ACTIVITY_VERIFIED,
        "Activity verified: {title}",
        "\"{title}\" has been verified. Your credential is being issued.",
    ),
    constants.TOPIC_ACTIVITY_REJECTED: (
        Notification.TYPE_ACTIVITY_REJECTED,
        "Activity rejected: {title}",
        "\"{title}\" was rejected. Reviewer comment: {comment}",
    ),
    constants.TOPIC_ACTIVITY_INFO_REQUESTED: (
        Notification.TYPE_INFO_REQUESTED,
        "More information needed: {title}",
        "A verifier asked for more information on \"{title}\": {comment}",
    ),
    constants.TOPIC_ACTIVITY_RESUBMITTED: (
        Notification.TYPE_ACTIVITY_RESUBMITTED,
        "Activity resubmitted: {title}",
        "\"{title}\" was resubmitted with new proof.",
    ),
    constants.TOPIC_ACTIVITY_WITHDRAWN: (
        Notification.TYPE_ACTIVITY_WITHDRAWN,
        "Activity withdrawn: {title}",
        "\"{title}\" was withdrawn by an administrator. {comment}",
    ),
    constants.TOPIC_CREDENTIAL_ISSUED: (
        Notification.TYPE_CREDENTIAL_ISSUED,
        "Credential issued: {title}",
        "Your signed credential for \"{title}\" is ready.",
    ),
    constants.TOPIC_CREDENTIAL_REVOKED: (
        Notification.TYPE_CREDENTIAL_REVOKED,
        "Credential revoked: {title}",
        "Your credential for \"{title}\" has been revoked.",
    ),
}

# The assigned verifier is told when work lands in their queue
VERIFIER_TOPICS = (
    constants.TOPIC_ACTIVITY_SUBMITTED,
    constants.TOPIC_ACTIVITY_RESUBMITTED,
)


def recipients_for(topic, activity):
    users = [activity.student]
    if topic in VERIFIER_TOPICS and activity.assigned_verifier_id:
        users.append(activity.assigned_verifier)
    return users


def handle_event(envelope: dict) -> None:
    topic = envelope["topic"]
    if topic not in MESSAGES:
        logger.warning(f"Dispatcher ignoring topic {topic}")
        return

    activity = (
        Activity.objects
        .select_related("student", "assigned_verifier")
        .filter(pk=envelope["activity_id"], tenant_id=envelope["tenant_id"])
        .first()
    )
    if activity is None:
        logger.warning(f"Dispatcher: activity {envelope['activity_id']} not found, skipping")
        return

    payload = envelope.get("payload") or {}
    notif_type, title_tpl, body_tpl = MESSAGES[topic]
    context = {
        "title": activity.title,
        "comment": payload.get("comment") or "",
    }
    dedup_key = f"{topic}:{activity.pk}:{envelope['sequence_no']}"

    for user in recipients_for(topic, activity):
        notification, created = Notification.objects.get_or_create(
            user=user,
            dedup_key=dedup_key,
            defaults={
                "type": notif_type,
                "title": title_tpl.format(**context)[:255],
                "body": body_tpl.format(**context).strip(),
                "activity": activity,
            },
        )
        if not created:
            continue

        transaction.on_commit(lambda n=notification: send_notification_email(n))
        logger.info(f"Notification created: user={user.pk}, type={notif_type}, activity={activity.pk}")
