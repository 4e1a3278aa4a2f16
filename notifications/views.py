# notifications/views.py
import uuid

from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework import status

from .models import Notification
from .serializers import NotificationSerializer

TRUTHY = ("1", "true", "yes")


class MyNotificationsView(APIView):
    """
    GET  /api/notifications/me/?unread=true&activity=<uuid>
    POST /api/notifications/me/          mark as read
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        qs = Notification.objects.filter(user=request.user)

        unread_only = request.query_params.get("unread", "")
        if unread_only.lower() in TRUTHY:
            qs = qs.filter(is_read=False)

        activity_id = request.query_params.get("activity")
        if activity_id:
            try:
                qs = qs.filter(activity_id=uuid.UUID(activity_id))
            except ValueError:
                return Response({"activity": "Not a valid activity id."}, status=status.HTTP_400_BAD_REQUEST)

        unread_count = Notification.objects.filter(user=request.user, is_read=False).count()
        return Response(
            {
                "unread_count": unread_count,
                "results": NotificationSerializer(qs[:200], many=True).data,
            }
        )

    def post(self, request):
        """
        Body: {"ids": [1, 2, 3]}; omit or leave empty to mark everything read.
        """
        ids = request.data.get("ids") or []
        if not isinstance(ids, list):
            return Response(
                {"ids": "Expected a list of notification ids."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        qs = Notification.objects.filter(user=request.user, is_read=False)
        if ids:
            qs = qs.filter(id__in=ids)

        return Response({"marked_read": qs.update(is_read=True)}, status=status.HTTP_200_OK)
