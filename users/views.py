# users/views.py - Identity context API

from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.contrib.auth import get_user_model

from .serializers import UserSerializer

User = get_user_model()


class UserViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Read-only user API. Users are managed by the identity provider; this
    only exposes the identity context the ledger acts on.
    """
    serializer_class = UserSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        # Only people of the caller's own tenant are visible
        user = self.request.user
        if user.tenant_id is None:
            return User.objects.none()
        return User.objects.filter(tenant_id=user.tenant_id).order_by("username")

    @action(detail=False, methods=['get'])
    def me(self, request):
        """
        GET /api/users/me/
        Return current user identity context (tenant, role, department)
        """
        serializer = self.get_serializer(request.user)
        return Response(serializer.data)
