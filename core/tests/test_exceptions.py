# core/tests/test_exceptions.py
from django.test import SimpleTestCase
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIRequestFactory

from core.exceptions import (
    ConcurrentModification,
    IssuanceUnavailable,
    NotFound,
    ProofTampered,
    custom_exception_handler,
)
from core.throttles import IntegrationInboundThrottle, ProofUploadThrottle


class ExceptionHandlerTest(SimpleTestCase):
    def test_ledger_errors_use_their_status_and_code(self):
        response = custom_exception_handler(ConcurrentModification(activity_id="a1"), {})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["success"], False)
        self.assertEqual(response.data["errors"]["code"], "concurrent_modification")
        self.assertEqual(response.data["errors"]["context"], {"activity_id": "a1"})

    def test_drf_errors_are_wrapped(self):
        response = custom_exception_handler(ValidationError({"title": ["required"]}), {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["errors"], {"title": ["required"]})

    def test_unexpected_errors_become_500(self):
        response = custom_exception_handler(RuntimeError("boom"), {})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data["errors"], {"detail": "Internal server error."})

    def test_retryable_kinds(self):
        self.assertTrue(ConcurrentModification.retryable)
        self.assertTrue(IssuanceUnavailable.retryable)
        self.assertFalse(ProofTampered.retryable)
        self.assertFalse(NotFound.retryable)
        self.assertEqual(NotFound().detail, "Not found.")


class ThrottleKeyTest(SimpleTestCase):
    def setUp(self):
        self.factory = APIRequestFactory()

    def test_integration_key_is_per_tenant(self):
        view = type("View", (), {"kwargs": {"tenant_slug": "iitx"}})()
        request = self.factory.post("/api/integrations/iitx/activities/")
        self.assertEqual(
            IntegrationInboundThrottle().get_cache_key(request, view),
            "throttle_integration-inbound_tiitx",
        )
        self.assertIsNone(IntegrationInboundThrottle().get_cache_key(self.factory.get("/"), view))

    def test_proof_upload_ignores_anonymous(self):
        request = self.factory.post("/")
        request.user = None
        view = type("View", (), {"kwargs": {"activity_id": "a1"}})()
        self.assertIsNone(ProofUploadThrottle().get_cache_key(request, view))
