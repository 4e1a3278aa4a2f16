from .activities import (
    ActivityListCreateView,
    ActivityDetailView,
    ProofUploadView,
    ActivityTransitionView,
    BulkTransitionView,
    ActivityHistoryView,
    ActivityCredentialView,
    ActivityCredentialPdfView,
)
from .integrations import IntegrationActivityCreateView
