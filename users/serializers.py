from rest_framework import serializers
from .models import User


class UserSerializer(serializers.ModelSerializer):
    tenant_slug = serializers.CharField(source="tenant.slug", read_only=True, default=None)
    effective_role = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = [
            'id',
            'username',
            'email',
            'role',
            'effective_role',
            'tenant',
            'tenant_slug',
            'department',
            'date_joined',
        ]
        read_only_fields = fields
