# notifications/emails.py
from django.core.mail import send_mail
from django.conf import settings


def build_activity_url(activity):
    return f"{settings.VTL_PUBLIC_BASE_URL.rstrip('/')}/api/activities/{activity.pk}/"


def send_notification_email(notification):
    """
    Mirror an in-app notification to the user's inbox.
    Users without an address only get the in-app copy.
    """
    user = notification.user
    if not getattr(user, "email", None):
        return

    lines = [
        f"Hi {user.username},",
        "",
        notification.body or notification.title,
    ]
    if notification.activity_id:
        lines += ["", "View the activity here:", build_activity_url(notification.activity)]
    lines += ["", "Verification & Trust Ledger"]

    send_mail(
        subject=notification.title,
        message="\n".join(lines),
        from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
        recipient_list=[user.email],
        fail_silently=True,
    )
