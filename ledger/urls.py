from django.urls import path

from .views import ActivityConsistencyView, DeadLetterListView, DeadLetterReplayView

urlpatterns = [
    path("activities/<uuid:activity_id>/consistency/", ActivityConsistencyView.as_view(), name="ledger-consistency"),
    path("dead-letters/", DeadLetterListView.as_view(), name="ledger-dead-letters"),
    path("dead-letters/<int:delivery_id>/replay/", DeadLetterReplayView.as_view(), name="ledger-dead-letter-replay"),
]
