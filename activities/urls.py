from django.urls import path

from .views import (
    ActivityListCreateView,
    ActivityDetailView,
    ProofUploadView,
    ActivityTransitionView,
    BulkTransitionView,
    ActivityHistoryView,
    ActivityCredentialView,
    ActivityCredentialPdfView,
)

urlpatterns = [
    path("", ActivityListCreateView.as_view(), name="activity-list"),
    path("bulk-transition/", BulkTransitionView.as_view(), name="activity-bulk-transition"),
    path("<uuid:activity_id>/", ActivityDetailView.as_view(), name="activity-detail"),
    path("<uuid:activity_id>/proofs/", ProofUploadView.as_view(), name="activity-proofs"),
    path("<uuid:activity_id>/transition/", ActivityTransitionView.as_view(), name="activity-transition"),
    path("<uuid:activity_id>/history/", ActivityHistoryView.as_view(), name="activity-history"),
    path("<uuid:activity_id>/credential/", ActivityCredentialView.as_view(), name="activity-credential"),
    path("<uuid:activity_id>/credential/pdf/", ActivityCredentialPdfView.as_view(), name="activity-credential-pdf"),
]
