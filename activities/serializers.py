# vtl-backend/activities/serializers.py
from django.conf import settings
from rest_framework import serializers

from ledger.models import TransitionRecord
from . import state_machine as sm
from .models import Activity, ProofRef
from .sanitizers import (
    sanitize_comment,
    sanitize_description,
    sanitize_text,
    sanitize_title,
)


# -----------------------------------------
# READ SERIALIZERS
# -----------------------------------------
class ProofRefSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProofRef
        fields = [
            "id",
            "position",
            "content_hash",
            "media_type",
            "size",
            "original_name",
            "uploaded_by",
            "uploaded_at",
            "verified_at",
        ]
        read_only_fields = fields


class ActivitySerializer(serializers.ModelSerializer):
    student_username = serializers.CharField(source="student.username", read_only=True)
    proofs = ProofRefSerializer(source="proof_refs", many=True, read_only=True)
    allowed_actions = serializers.SerializerMethodField()

    class Meta:
        model = Activity
        fields = [
            "id",
            "tenant",
            "student",
            "student_username",
            "type",
            "title",
            "description",
            "department",
            "assigned_verifier",
            "proof_waived",
            "waiver_reason",
            "status",
            "version",
            "external_ref",
            "created_by",
            "created_at",
            "last_transition_at",
            "proofs",
            "allowed_actions",
        ]
        read_only_fields = fields

    def get_allowed_actions(self, obj):
        # Table only; role checks happen when the action is attempted
        return sm.get_allowed_actions(obj.status)


class TransitionRecordSerializer(serializers.ModelSerializer):
    actor_username = serializers.CharField(source="actor.username", read_only=True)

    class Meta:
        model = TransitionRecord
        fields = [
            "sequence_no",
            "action",
            "from_status",
            "to_status",
            "actor",
            "actor_username",
            "actor_role",
            "comment",
            "recorded_at",
        ]
        read_only_fields = fields


# -----------------------------------------
# INPUT SERIALIZERS
# -----------------------------------------
class ActivityInputMixin:
    def validate_title(self, value):
        value = sanitize_title(value)
        if not value:
            raise serializers.ValidationError("Title cannot be empty.")
        return value

    def validate_description(self, value):
        return sanitize_description(value)

    def validate_department(self, value):
        return sanitize_text(value, max_length=120)

    def validate_waiver_reason(self, value):
        return sanitize_text(value, max_length=255)

    def validate(self, attrs):
        if attrs.get("proof_waived") and not attrs.get("waiver_reason"):
            raise serializers.ValidationError({"waiver_reason": "A reason is required when proof is waived."})
        return attrs


class ActivityCreateSerializer(ActivityInputMixin, serializers.Serializer):
    title = serializers.CharField(max_length=255)
    type = serializers.ChoiceField(choices=Activity.TYPE_CHOICES, default=Activity.TYPE_OTHER)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    department = serializers.CharField(required=False, allow_blank=True, default="")
    student = serializers.IntegerField(required=False, help_text="Admins may create on behalf of a student")
    assigned_verifier = serializers.IntegerField(required=False, allow_null=True)
    proof_waived = serializers.BooleanField(default=False)
    waiver_reason = serializers.CharField(required=False, allow_blank=True, default="")
    submit = serializers.BooleanField(default=False)


class IntegrationActivitySerializer(ActivityInputMixin, serializers.Serializer):
    external_ref = serializers.CharField(max_length=128)
    student = serializers.CharField(max_length=150, help_text="Student username within the tenant")
    title = serializers.CharField(max_length=255)
    type = serializers.ChoiceField(choices=Activity.TYPE_CHOICES, default=Activity.TYPE_OTHER)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    department = serializers.CharField(required=False, allow_blank=True, default="")
    proof_waived = serializers.BooleanField(default=False)
    waiver_reason = serializers.CharField(required=False, allow_blank=True, default="")
    submit = serializers.BooleanField(default=False)

    def validate_external_ref(self, value):
        value = sanitize_text(value, max_length=128)
        if not value:
            raise serializers.ValidationError("external_ref cannot be empty.")
        return value


class TransitionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=sm.ACTION_CHOICES)
    comment = serializers.CharField(required=False, allow_blank=True, default="")
    expected_sequence_no = serializers.IntegerField(required=False, allow_null=True, min_value=0)

    def validate_comment(self, value):
        return sanitize_comment(value)


class BulkTransitionSerializer(serializers.Serializer):
    activity_ids = serializers.ListField(
        child=serializers.UUIDField(),
        allow_empty=False,
        max_length=200,
    )
    action = serializers.ChoiceField(choices=sm.ACTION_CHOICES)
    comment = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_comment(self, value):
        return sanitize_comment(value)


class ProofUploadSerializer(serializers.Serializer):
    file = serializers.FileField()

    def validate_file(self, value):
        limit = settings.VTL_MAX_PROOF_BYTES
        if value.size > limit:
            raise serializers.ValidationError(f"Proof files are limited to {limit} bytes.")
        if value.size == 0:
            raise serializers.ValidationError("Proof file is empty.")
        return value


class HistoryQuerySerializer(serializers.Serializer):
    after = serializers.IntegerField(required=False, default=0, min_value=0)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=500)
