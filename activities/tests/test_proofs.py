# activities/tests/test_proofs.py
import hashlib

from django.core.files.storage import default_storage
from django.test import TestCase

from activities.models import Activity
from activities.proofs import ProofStore, content_hash, verify_proof, verify_proofs
from activities.services import attach_proof
from core.exceptions import InvalidTransition, ProofTampered, Unauthorized
from .helpers import LedgerWorldMixin


class ProofStoreTest(TestCase):
    def setUp(self):
        self.store = ProofStore()

    def test_put_returns_sha256_and_round_trips(self):
        data = b"transcript-2024-" + hashlib.sha1(self.id().encode()).digest()
        digest = self.store.put(data)

        self.assertEqual(digest, hashlib.sha256(data).hexdigest())
        self.assertEqual(self.store.path_for(digest), f"proofs/{digest[:2]}/{digest}")
        self.assertTrue(self.store.exists(digest))
        self.assertEqual(self.store.get(digest), data)

    def test_same_bytes_are_written_once(self):
        data = b"same bytes " + self.id().encode()
        first = self.store.put(data)
        second = self.store.put(data)

        self.assertEqual(first, second)
        _, files = default_storage.listdir(f"proofs/{first[:2]}")
        self.assertEqual(files.count(first), 1)


class ProofIntegrityTest(LedgerWorldMixin, TestCase):
    def setUp(self):
        self.build_world()

    def test_verify_proofs_stamps_verified_at(self):
        activity = self.make_activity()
        self.assertEqual(verify_proofs(activity), 1)
        self.assertIsNotNone(activity.proof_refs.get().verified_at)

    def test_tampered_bytes_are_detected(self):
        activity = self.make_activity()
        proof = activity.proof_refs.get()
        self.tamper_proof(proof)

        with self.assertRaises(ProofTampered) as ctx:
            verify_proof(proof)
        self.assertEqual(ctx.exception.context["content_hash"], proof.content_hash)

    def test_missing_bytes_are_tampering(self):
        activity = self.make_activity()
        proof = activity.proof_refs.get()
        default_storage.delete(ProofStore().path_for(proof.content_hash))

        with self.assertRaises(ProofTampered):
            verify_proof(proof)

    def test_content_hash_is_computed_not_trusted(self):
        activity = self.make_activity(with_proof=False)
        data = self.proof_bytes("upload")
        proof = attach_proof(self.actor(self.student), activity.pk, data, "image/png", "scan.png")

        self.assertEqual(proof.content_hash, content_hash(data))
        self.assertEqual(proof.position, 1)
        self.assertEqual(proof.size, len(data))


class AttachProofRulesTest(LedgerWorldMixin, TestCase):
    def setUp(self):
        self.build_world()

    def test_positions_increase(self):
        activity = self.make_activity()
        proof = attach_proof(self.actor(self.student), activity.pk, self.proof_bytes(), "application/pdf")
        self.assertEqual(proof.position, 2)

    def test_only_owner_may_attach(self):
        activity = self.make_activity()
        with self.assertRaises(Unauthorized):
            attach_proof(self.actor(self.verifier), activity.pk, self.proof_bytes())
        with self.assertRaises(Unauthorized):
            attach_proof(self.actor(self.admin), activity.pk, self.proof_bytes())

    def test_proofs_frozen_outside_draft_and_pending_info(self):
        activity = self.make_activity(submit=True)
        self.assertEqual(activity.status, Activity.STATUS_PENDING)

        with self.assertRaises(InvalidTransition):
            attach_proof(self.actor(self.student), activity.pk, self.proof_bytes())
        self.assertEqual(activity.proof_refs.count(), 1)
