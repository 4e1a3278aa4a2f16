# users/tests/test_identity.py
from django.test import TestCase
from rest_framework.test import APIClient

from activities.tests.helpers import LedgerWorldMixin


class IdentityContextTest(LedgerWorldMixin, TestCase):
    def setUp(self):
        self.build_world()
        self.client = APIClient()

    def test_me_returns_identity_context(self):
        self.client.force_authenticate(self.verifier)
        response = self.client.get("/api/users/me/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["tenant_slug"], "iitx")
        self.assertEqual(response.data["effective_role"], "verifier")
        self.assertEqual(response.data["department"], "cse")

    def test_superuser_acts_as_admin(self):
        root = self.make_user("root", "student")
        root.is_superuser = True
        root.save()
        self.client.force_authenticate(root)
        self.assertEqual(self.client.get("/api/users/me/").data["effective_role"], "admin")

    def test_listing_is_tenant_scoped(self):
        self.client.force_authenticate(self.admin)
        response = self.client.get("/api/users/")
        usernames = {u["username"] for u in response.data}
        self.assertIn("stu", usernames)
        self.assertNotIn("out", usernames)

    def test_anonymous_is_refused(self):
        self.assertEqual(self.client.get("/api/users/me/").status_code, 401)
