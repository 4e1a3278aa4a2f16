# core/throttles.py

from rest_framework.throttling import ScopedRateThrottle


class CredentialVerifyThrottle(ScopedRateThrottle):
    """
    Throttle the public credential verification endpoint per client IP.

    Scope key: 'credential-verify'
    Cache key shape:
      throttle_credential-verify_<ip>
    """
    scope = "credential-verify"

    def get_cache_key(self, request, view):
        return f"throttle_{self.scope}_{self.get_ident(request)}"


class IntegrationInboundThrottle(ScopedRateThrottle):
    """
    Throttle inbound LMS/ERP requests per tenant, signed or not.

    Scope key: 'integration-inbound'
    Cache key shape:
      throttle_integration-inbound_t<tenant_slug>
    """
    scope = "integration-inbound"

    def get_cache_key(self, request, view):
        if request.method != "POST":
            return None
        tenant_slug = getattr(view, "kwargs", {}).get("tenant_slug") or "unknown"
        return f"throttle_{self.scope}_t{tenant_slug}"


class ProofUploadThrottle(ScopedRateThrottle):
    """
    Throttle proof uploads per user per activity.

    Scope key: 'proof-upload'
    Cache key shape:
      throttle_proof-upload_u<user_id>_a<activity_id>
    """
    scope = "proof-upload"

    def get_cache_key(self, request, view):
        if request.method != "POST":
            return None

        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return None

        activity_id = getattr(view, "kwargs", {}).get("activity_id") or "none"
        return f"throttle_{self.scope}_u{user.id}_a{activity_id}"
