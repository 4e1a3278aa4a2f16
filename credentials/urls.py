from django.urls import path

from .views import CredentialVerifyView

urlpatterns = [
    path("<uuid:credential_id>/verify/", CredentialVerifyView.as_view(), name="credential-verify"),
]
