# core/constants.py

# --- Event Bus Topics (Standard Registry) ---

# Activity lifecycle
TOPIC_ACTIVITY_CREATED = "activity.created"
TOPIC_ACTIVITY_SUBMITTED = "activity.submitted"
TOPIC_ACTIVITY_VERIFIED = "activity.verified"
TOPIC_ACTIVITY_REJECTED = "activity.rejected"
TOPIC_ACTIVITY_INFO_REQUESTED = "activity.info_requested"
TOPIC_ACTIVITY_RESUBMITTED = "activity.resubmitted"
TOPIC_ACTIVITY_WITHDRAWN = "activity.withdrawn"

# Credentials
TOPIC_CREDENTIAL_ISSUED = "credential.issued"
TOPIC_CREDENTIAL_REVOKED = "credential.revoked"

ALL_TOPICS = [
    TOPIC_ACTIVITY_CREATED,
    TOPIC_ACTIVITY_SUBMITTED,
    TOPIC_ACTIVITY_VERIFIED,
    TOPIC_ACTIVITY_REJECTED,
    TOPIC_ACTIVITY_INFO_REQUESTED,
    TOPIC_ACTIVITY_RESUBMITTED,
    TOPIC_ACTIVITY_WITHDRAWN,
    TOPIC_CREDENTIAL_ISSUED,
    TOPIC_CREDENTIAL_REVOKED,
]

# --- Operational facts recorded in the Audit Ledger ---

FACT_CREDENTIAL_ISSUED = "credential.issued"
FACT_CREDENTIAL_REVOKED = "credential.revoked"
FACT_DELIVERY_DEAD_LETTERED = "delivery.dead_lettered"
FACT_DELIVERY_REPLAYED = "delivery.replayed"
FACT_LEDGER_INCONSISTENCY = "ledger.inconsistency"
FACT_INTEGRATION_REJECTED = "integration.rejected"

FACT_CHOICES = [
    (FACT_CREDENTIAL_ISSUED, "Credential issued"),
    (FACT_CREDENTIAL_REVOKED, "Credential revoked"),
    (FACT_DELIVERY_DEAD_LETTERED, "Delivery dead-lettered"),
    (FACT_DELIVERY_REPLAYED, "Delivery replayed"),
    (FACT_LEDGER_INCONSISTENCY, "Ledger inconsistency"),
    (FACT_INTEGRATION_REJECTED, "Integration request rejected"),
]


def is_valid_topic(topic: str) -> bool:
    """Check if a topic is a registered event bus topic."""
    return topic in ALL_TOPICS
