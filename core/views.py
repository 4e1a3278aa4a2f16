from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny
from django.db import connections
from django.db.utils import OperationalError
from django.conf import settings
import time

from bus.models import EventDelivery


class HealthCheckView(APIView):
    """
    Lightweight health endpoint for uptime checks.
    - Checks DB connectivity
    - Reports the delivery backlog (pending / dead-lettered)
    """
    permission_classes = [AllowAny]
    authentication_classes = []  # public endpoint

    def get(self, request, *args, **kwargs):
        start = time.time()

        db_ok = True
        backlog = None
        try:
            connections["default"].cursor()
            backlog = {
                "pending": EventDelivery.objects.filter(status=EventDelivery.STATUS_PENDING).count(),
                "dead_lettered": EventDelivery.objects.filter(status=EventDelivery.STATUS_DEAD_LETTERED).count(),
            }
        except OperationalError:
            db_ok = False

        duration_ms = int((time.time() - start) * 1000)

        return Response(
            {
                "status": "ok" if db_ok else "degraded",
                "db": db_ok,
                "deliveries": backlog,
                "env": getattr(settings, "ENV", "unknown"),
                "latency_ms": duration_ms,
            }
        )
