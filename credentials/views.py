from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny

from core.exceptions import NotFound
from core.throttles import CredentialVerifyThrottle
from .issuer import verify_credential
from .models import Credential


class CredentialVerifyView(APIView):
    """
    GET /api/credentials/<credential_id>/verify/

    Public: anyone holding a credential id (e.g. from the QR code) can check
    its signature and revocation state.
    """
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [CredentialVerifyThrottle]
    throttle_scope = "credential-verify"

    def get(self, request, credential_id):
        credential = Credential.objects.filter(pk=credential_id).first()
        if credential is None:
            raise NotFound("Credential not found.", credential_id=str(credential_id))
        return Response(verify_credential(credential))
