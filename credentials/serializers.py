from django.urls import reverse
from rest_framework import serializers

from .models import Credential


class CredentialSerializer(serializers.ModelSerializer):
    is_active = serializers.BooleanField(read_only=True)
    verify_url = serializers.SerializerMethodField()
    pdf_url = serializers.SerializerMethodField()

    class Meta:
        model = Credential
        fields = [
            "id",
            "activity",
            "subject",
            "issued_at",
            "payload",
            "payload_hash",
            "signature",
            "key_id",
            "verify_key",
            "is_active",
            "revoked_at",
            "revocation_reason",
            "verify_url",
            "pdf_url",
        ]
        read_only_fields = fields

    def get_verify_url(self, obj):
        from .document import build_verify_url
        return build_verify_url(obj, self.context.get("request"))

    def get_pdf_url(self, obj):
        request = self.context.get("request")
        path = reverse("activity-credential-pdf", args=[obj.activity_id])
        if request is not None:
            return request.build_absolute_uri(path)
        return path
