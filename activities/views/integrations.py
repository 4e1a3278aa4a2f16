import logging

from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny
from rest_framework import status

from activities import integrations
from activities.serializers import ActivitySerializer, IntegrationActivitySerializer
from core.throttles import IntegrationInboundThrottle
from .generics import api_error

logger = logging.getLogger("vtl.integrations")


class IntegrationActivityCreateView(APIView):
    """
    POST /api/integrations/<tenant_slug>/activities/

    Server-to-server: authenticated by the HMAC signature headers only.
    201 on create, 200 when external_ref was already imported.
    """
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [IntegrationInboundThrottle]
    throttle_scope = "integration-inbound"

    def post(self, request, tenant_slug):
        # Signature covers the raw bytes; read them before DRF parses the body
        body = request.body
        tenant = integrations.verify_request(
            tenant_slug,
            request.headers.get(integrations.TIMESTAMP_HEADER),
            request.headers.get(integrations.SIGNATURE_HEADER),
            body,
            remote_addr=request.META.get("REMOTE_ADDR", ""),
        )

        serializer = IntegrationActivitySerializer(data=request.data)
        if not serializer.is_valid():
            logger.info(f"Integration payload invalid: tenant={tenant.slug}, errors={serializer.errors}")
            return api_error(serializer.errors)

        activity, created = integrations.create_from_integration(tenant, serializer.validated_data)
        return Response(
            ActivitySerializer(activity).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )
