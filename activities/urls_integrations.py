from django.urls import path

from .views import IntegrationActivityCreateView

urlpatterns = [
    path("<slug:tenant_slug>/activities/", IntegrationActivityCreateView.as_view(), name="integration-activity-create"),
]
