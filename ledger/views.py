from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework import serializers

from activities.views.generics import api_error, parse_pagination, require_operator
from bus import services as bus
from bus.models import EventDelivery
from .services import ledger


class DeadLetterSerializer(serializers.ModelSerializer):
    topic = serializers.CharField(source="event.topic", read_only=True)
    activity_id = serializers.UUIDField(source="event.activity_id", read_only=True)
    sequence_no = serializers.IntegerField(source="event.sequence_no", read_only=True)

    class Meta:
        model = EventDelivery
        fields = [
            "id",
            "consumer",
            "topic",
            "activity_id",
            "sequence_no",
            "status",
            "attempts",
            "last_error",
            "dead_lettered_at",
        ]
        read_only_fields = fields


class ActivityConsistencyView(APIView):
    """
    GET /api/ledger/activities/<id>/consistency/

    Admin-only. 200 with the folded state when consistent; a detected
    inconsistency is recorded and answered with the ledger_inconsistency error.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, activity_id):
        actor = require_operator(request)
        result = ledger.verify_consistency(actor.tenant_id, activity_id)
        return Response({
            "activity_id": str(activity_id),
            "consistent": True,
            "status": result.status,
            "sequence_no": result.last_sequence_no,
        })


class DeadLetterListView(APIView):
    """
    GET /api/ledger/dead-letters/?consumer=&limit=&offset=
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = require_operator(request)
        qs = bus.dead_letters().filter(event__tenant_id=actor.tenant_id)

        consumer = request.query_params.get("consumer")
        if consumer:
            qs = qs.filter(consumer=consumer)

        try:
            limit, offset = parse_pagination(request)
        except ValueError:
            return api_error({"detail": "Invalid pagination params"})

        return Response({
            "count": qs.count(),
            "results": DeadLetterSerializer(qs[offset: offset + limit], many=True).data,
            "limit": limit,
            "offset": offset,
        })


class DeadLetterReplayView(APIView):
    """
    POST /api/ledger/dead-letters/<delivery_id>/replay/
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, delivery_id):
        actor = require_operator(request)
        delivery = bus.replay_dead_letter(delivery_id, actor=request.user, tenant=request.user.tenant)
        return Response({
            "id": delivery.pk,
            "status": delivery.status,
            "attempts": delivery.attempts,
            "replayed_by": actor.user_id,
        })
