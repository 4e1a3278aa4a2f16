# activities/tests/helpers.py
import uuid

from django.contrib.auth import get_user_model
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage

from activities.policies import Actor
from activities.proofs import ProofStore
from activities.services import create_activity
from core.models import Tenant

User = get_user_model()


class LedgerWorldMixin:
    """
    One tenant ("iitx", which has a test issuing key) with a student, two
    verifiers in different departments and an admin, plus a second tenant.
    """

    def build_world(self):
        self.tenant = Tenant.objects.create(name="IIT X", slug="iitx", integration_secret="s3cret-iitx")
        self.other_tenant = Tenant.objects.create(name="Other University", slug="otheru", integration_secret="s3cret-other")

        self.student = self.make_user("stu", User.ROLE_STUDENT, department="cse", email="stu@example.com")
        self.student2 = self.make_user("stu2", User.ROLE_STUDENT, department="cse")
        self.verifier = self.make_user("ver", User.ROLE_VERIFIER, department="cse", email="ver@example.com")
        self.ece_verifier = self.make_user("ver_ece", User.ROLE_VERIFIER, department="ece")
        self.admin = self.make_user("adm", User.ROLE_ADMIN)
        self.outsider = self.make_user("out", User.ROLE_VERIFIER, department="cse", tenant=self.other_tenant)

    def make_user(self, username, role, department="", email="", tenant=None):
        return User.objects.create_user(
            username=username,
            password="pass123",
            email=email,
            role=role,
            department=department,
            tenant=tenant or self.tenant,
        )

    def actor(self, user):
        return Actor.from_user(user)

    def proof_bytes(self, label="proof"):
        # Unique content so tests never share a store object
        return f"{label}-{uuid.uuid4()}".encode()

    def make_activity(self, student=None, submit=False, with_proof=True, **kwargs):
        student = student or self.student
        proofs = [(self.proof_bytes(), "application/pdf", "certificate.pdf")] if with_proof else []
        return create_activity(
            self.actor(student),
            student,
            title=kwargs.pop("title", "Smart India Hackathon finalist"),
            type=kwargs.pop("type", "competition"),
            proofs=proofs,
            submit=submit,
            **kwargs,
        )

    def tamper_proof(self, proof, replacement=b"forged evidence"):
        """Overwrite stored bytes behind the store's back."""
        path = ProofStore().path_for(proof.content_hash)
        default_storage.delete(path)
        default_storage.save(path, ContentFile(replacement))
