# activities/tests/test_integrations.py
import json
import time

from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from activities.integrations import compute_signature, verify_request
from activities.models import Activity
from core import constants
from core.exceptions import InvalidSignature
from ledger.models import OperationalRecord
from .helpers import LedgerWorldMixin


class SignedRequestMixin:
    secret = "s3cret-iitx"

    def signed_post(self, payload, tenant_slug="iitx", secret=None, timestamp=None, signature=None):
        body = json.dumps(payload).encode()
        timestamp = str(int(time.time())) if timestamp is None else timestamp
        if signature is None:
            signature = compute_signature(secret or self.secret, timestamp, body)
        return self.client.post(
            reverse("integration-activity-create", args=[tenant_slug]),
            data=body,
            content_type="application/json",
            HTTP_X_VTL_TIMESTAMP=timestamp,
            HTTP_X_VTL_SIGNATURE=signature,
        )


class VerifyRequestTest(LedgerWorldMixin, TestCase):
    def setUp(self):
        self.build_world()
        self.body = b'{"external_ref": "lms-1"}'
        self.now = 1_700_000_000
        self.ts = str(self.now)

    def test_valid_signature_returns_tenant(self):
        signature = compute_signature("s3cret-iitx", self.ts, self.body)
        tenant = verify_request("iitx", self.ts, signature, self.body, now=self.now)
        self.assertEqual(tenant, self.tenant)

    def test_every_rejection_is_recorded(self):
        good = compute_signature("s3cret-iitx", self.ts, self.body)
        cases = [
            ("nowhere", self.ts, good, self.now),
            ("iitx", None, good, self.now),
            ("iitx", "yesterday", good, self.now),
            ("iitx", self.ts, good, self.now + 3600),
            ("iitx", self.ts, compute_signature("wrong", self.ts, self.body), self.now),
        ]
        for slug, ts, signature, now in cases:
            with self.subTest(slug=slug, ts=ts):
                with self.assertRaises(InvalidSignature):
                    verify_request(slug, ts, signature, self.body, now=now)

        reasons = list(
            OperationalRecord.objects
            .filter(kind=constants.FACT_INTEGRATION_REJECTED)
            .order_by("id")
            .values_list("detail__reason", flat=True)
        )
        self.assertEqual(
            reasons,
            [
                "unknown tenant",
                "missing signature headers",
                "malformed timestamp",
                "timestamp outside allowed skew",
                "signature mismatch",
            ],
        )

    def test_inactive_tenant_is_refused(self):
        self.tenant.is_active = False
        self.tenant.save()
        signature = compute_signature("s3cret-iitx", self.ts, self.body)
        with self.assertRaises(InvalidSignature):
            verify_request("iitx", self.ts, signature, self.body, now=self.now)


class IntegrationEndpointTest(SignedRequestMixin, LedgerWorldMixin, TestCase):
    def setUp(self):
        self.build_world()
        self.client = APIClient()
        self.payload = {
            "external_ref": "lms-42",
            "student": "stu",
            "title": "NPTEL Cloud Computing",
            "type": "certification",
            "proof_waived": True,
            "waiver_reason": "Verified by LMS",
            "submit": True,
        }

    def test_signed_request_creates_and_submits(self):
        response = self.signed_post(self.payload)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], Activity.STATUS_PENDING)

        activity = Activity.objects.get(external_ref="lms-42")
        self.assertEqual(activity.student, self.student)
        self.assertEqual(activity.transition_records.get().actor, self.student)

    def test_replay_returns_existing_activity(self):
        first = self.signed_post(self.payload)
        second = self.signed_post(self.payload)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.data["id"], first.data["id"])
        self.assertEqual(Activity.objects.filter(external_ref="lms-42").count(), 1)

    def test_bad_signature_creates_nothing(self):
        response = self.signed_post(self.payload, secret="guessed")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data["errors"]["code"], "invalid_signature")
        self.assertFalse(Activity.objects.exists())

    def test_stale_timestamp_is_refused(self):
        response = self.signed_post(self.payload, timestamp=str(int(time.time()) - 3600))
        self.assertEqual(response.status_code, 401)

    def test_secret_of_another_tenant_does_not_work(self):
        response = self.signed_post(self.payload, tenant_slug="iitx", secret="s3cret-other")
        self.assertEqual(response.status_code, 401)

    def test_unknown_student_is_404(self):
        response = self.signed_post({**self.payload, "student": "ghost"})
        self.assertEqual(response.status_code, 404)

    def test_invalid_payload_is_400(self):
        response = self.signed_post({"student": "stu"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("external_ref", response.data["errors"])
