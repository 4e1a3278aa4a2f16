import logging

from django.db.models import Q
from django.http import HttpResponse
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework import status

from activities import engine, services
from activities.models import Activity
from activities.serializers import (
    ActivityCreateSerializer,
    ActivitySerializer,
    BulkTransitionSerializer,
    HistoryQuerySerializer,
    ProofRefSerializer,
    ProofUploadSerializer,
    TransitionRecordSerializer,
    TransitionSerializer,
)
from activities.sanitizers import sanitize_media_type, sanitize_title
from core.exceptions import NotFound
from core.throttles import ProofUploadThrottle
from credentials.document import render_credential_pdf
from credentials.issuer import current_credential
from credentials.serializers import CredentialSerializer
from ledger.services import ledger
from users.models import User
from .generics import api_error, current_actor, parse_pagination

logger = logging.getLogger("vtl.activities")


class ActivityListCreateView(APIView):
    """
    GET  /api/activities/?status=pending&mine=true&limit=&offset=
    POST /api/activities/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = current_actor(request)
        qs = services.visible_activities(actor, status=request.query_params.get("status"))

        mine_param = request.query_params.get("mine")
        if mine_param and mine_param.lower() in ("1", "true", "yes"):
            qs = qs.filter(student_id=actor.user_id)

        queue_param = request.query_params.get("queue")
        if queue_param and queue_param.lower() in ("1", "true", "yes"):
            # Verifier work queue: pending items routed to this verifier
            routed = Q(assigned_verifier_id=actor.user_id)
            if actor.department:
                routed |= Q(assigned_verifier__isnull=True, department__iexact=actor.department)
            qs = qs.filter(routed, status=Activity.STATUS_PENDING)

        try:
            limit, offset = parse_pagination(request)
        except ValueError:
            return api_error({"detail": "Invalid pagination params"})

        total_count = qs.count()
        qs = qs.prefetch_related("proof_refs")[offset: offset + limit]
        return Response({
            "count": total_count,
            "results": ActivitySerializer(qs, many=True).data,
            "limit": limit,
            "offset": offset,
        })

    def post(self, request):
        actor = current_actor(request)
        serializer = ActivityCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return api_error(serializer.errors)
        data = serializer.validated_data

        student = request.user
        if data.get("student") and data["student"] != request.user.id:
            student = User.objects.filter(pk=data["student"], tenant_id=actor.tenant_id).first()
            if student is None:
                raise NotFound("Student not found in this tenant.")

        verifier = None
        if data.get("assigned_verifier"):
            verifier = User.objects.filter(pk=data["assigned_verifier"], tenant_id=actor.tenant_id).first()
            if verifier is None:
                raise NotFound("Assigned verifier not found in this tenant.")

        activity = services.create_activity(
            actor,
            student,
            title=data["title"],
            type=data["type"],
            description=data["description"],
            department=data["department"],
            assigned_verifier=verifier,
            proof_waived=data["proof_waived"],
            waiver_reason=data["waiver_reason"],
            submit=data["submit"],
        )
        return Response(ActivitySerializer(activity).data, status=status.HTTP_201_CREATED)


class ActivityDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, activity_id):
        activity = services.get_visible_activity(current_actor(request), activity_id)
        return Response(ActivitySerializer(activity).data)


class ProofUploadView(APIView):
    """
    POST /api/activities/<id>/proofs/   (multipart, field "file")
    """
    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser]
    throttle_classes = [ProofUploadThrottle]
    throttle_scope = "proof-upload"

    def post(self, request, activity_id):
        actor = current_actor(request)
        serializer = ProofUploadSerializer(data=request.data)
        if not serializer.is_valid():
            return api_error(serializer.errors)

        upload = serializer.validated_data["file"]
        proof = services.attach_proof(
            actor,
            activity_id,
            upload.read(),
            media_type=sanitize_media_type(getattr(upload, "content_type", "")),
            original_name=sanitize_title(upload.name),
        )
        return Response(ProofRefSerializer(proof).data, status=status.HTTP_201_CREATED)


class ActivityTransitionView(APIView):
    """
    POST /api/activities/<id>/transition/
    {"action": "approve", "comment": "", "expected_sequence_no": 1}
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, activity_id):
        actor = current_actor(request)
        serializer = TransitionSerializer(data=request.data)
        if not serializer.is_valid():
            return api_error(serializer.errors)
        data = serializer.validated_data

        result = engine.apply(
            actor.tenant_id,
            activity_id,
            data["action"],
            actor,
            comment=data["comment"],
            expected_sequence_no=data.get("expected_sequence_no"),
        )
        return Response({"status": result.status, "sequence_no": result.sequence_no})


class BulkTransitionView(APIView):
    """
    POST /api/activities/bulk-transition/
    {"activity_ids": [...], "action": "approve", "comment": ""}

    Each activity is its own transaction; the response lists every outcome.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        actor = current_actor(request)
        serializer = BulkTransitionSerializer(data=request.data)
        if not serializer.is_valid():
            return api_error(serializer.errors)
        data = serializer.validated_data

        results = engine.bulk_apply(
            actor.tenant_id,
            data["activity_ids"],
            data["action"],
            actor,
            comment=data["comment"],
        )
        succeeded = sum(1 for r in results if r["ok"])
        logger.info(
            f"Bulk {data['action']} by user={actor.user_id}: {succeeded}/{len(results)} succeeded"
        )
        return Response({
            "results": results,
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
        })


class ActivityHistoryView(APIView):
    """
    GET /api/activities/<id>/history/?after=<sequence_no>&limit=
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, activity_id):
        actor = current_actor(request)
        activity = services.get_visible_activity(actor, activity_id)

        query = HistoryQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return api_error(query.errors)

        page = ledger.history(
            actor.tenant_id,
            activity.pk,
            after_sequence_no=query.validated_data["after"],
            limit=query.validated_data.get("limit"),
        )
        return Response({
            "activity_id": str(activity.pk),
            "results": TransitionRecordSerializer(page.records, many=True).data,
            "next_after": page.next_after,
            "has_more": page.has_more,
        })


class ActivityCredentialView(APIView):
    """
    GET /api/activities/<id>/credential/   404 when never issued
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, activity_id):
        activity = services.get_visible_activity(current_actor(request), activity_id)
        credential = current_credential(activity)
        if credential is None:
            raise NotFound("No credential has been issued for this activity.", activity_id=str(activity.pk))
        return Response(CredentialSerializer(credential, context={"request": request}).data)


class ActivityCredentialPdfView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, activity_id):
        activity = services.get_visible_activity(current_actor(request), activity_id)
        credential = current_credential(activity)
        if credential is None:
            raise NotFound("No credential has been issued for this activity.", activity_id=str(activity.pk))

        pdf_bytes = render_credential_pdf(credential, request=request)
        response = HttpResponse(pdf_bytes, content_type="application/pdf")
        response["Content-Disposition"] = f'inline; filename="credential_{credential.pk}.pdf"'
        response["Cache-Control"] = "no-store"
        return response
