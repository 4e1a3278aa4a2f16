from django.contrib import admin
from django.urls import path, include
from core.views import HealthCheckView
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
    TokenVerifyView,
)

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/users/', include('users.urls')),
    path('api/activities/', include('activities.urls')),
    path('api/credentials/', include('credentials.urls')),
    path('api/ledger/', include('ledger.urls')),
    path('api/notifications/', include('notifications.urls')),
    path('api/integrations/', include('activities.urls_integrations')),
    # Identity is issued elsewhere; these only exchange credentials for JWTs
    path("api/auth/jwt/login/", TokenObtainPairView.as_view(), name="jwt-login"),
    path("api/auth/jwt/refresh/", TokenRefreshView.as_view(), name="jwt-refresh"),
    path("api/auth/jwt/verify/", TokenVerifyView.as_view(), name="jwt-verify"),
    path("api/health/", HealthCheckView.as_view(), name="health-check"),
]
