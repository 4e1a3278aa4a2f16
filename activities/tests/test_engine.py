# activities/tests/test_engine.py
from unittest import mock

from django.db import OperationalError
from django.test import TestCase, override_settings

from activities import engine
from activities import state_machine as sm
from activities.models import Activity
from activities.services import attach_proof
from bus.models import DomainEvent
from core import constants
from core.exceptions import (
    ConcurrentModification,
    InvalidTransition,
    NotFound,
    ProofTampered,
    Timeout,
    Unauthorized,
)
from credentials.models import Credential
from ledger.models import TransitionRecord
from ledger.services import ledger
from .helpers import LedgerWorldMixin


class EngineScenarioTest(LedgerWorldMixin, TestCase):
    def setUp(self):
        self.build_world()

    def test_draft_submit_approve_withdraw(self):
        activity = self.make_activity()
        self.assertEqual(activity.status, Activity.STATUS_DRAFT)
        self.assertEqual(activity.version, 0)

        result = engine.apply(self.tenant.id, activity.pk, sm.ACTION_SUBMIT, self.actor(self.student))
        self.assertEqual((result.status, result.sequence_no), (Activity.STATUS_PENDING, 1))

        with self.captureOnCommitCallbacks(execute=True):
            result = engine.apply(self.tenant.id, activity.pk, sm.ACTION_APPROVE, self.actor(self.verifier))
        self.assertEqual((result.status, result.sequence_no), (Activity.STATUS_VERIFIED, 2))
        self.assertEqual(Credential.objects.filter(activity=activity, revoked_at__isnull=True).count(), 1)

        with self.captureOnCommitCallbacks(execute=True):
            result = engine.apply(
                self.tenant.id, activity.pk, sm.ACTION_WITHDRAW, self.actor(self.admin), comment="Forged certificate"
            )
        self.assertEqual((result.status, result.sequence_no), (Activity.STATUS_WITHDRAWN, 3))

        credentials = Credential.objects.filter(activity=activity)
        self.assertEqual(credentials.count(), 1, "Withdrawal must never issue a new credential")
        self.assertIsNotNone(credentials.get().revoked_at)

        records = list(TransitionRecord.objects.filter(activity=activity).order_by("sequence_no"))
        self.assertEqual([r.sequence_no for r in records], [1, 2, 3])
        self.assertEqual([r.action for r in records], ["submit", "approve", "withdraw"])
        self.assertEqual(records[1].actor_role, "verifier")
        self.assertEqual(records[2].comment, "Forged certificate")

        # Reconstructibility
        self.assertEqual(ledger.verify_consistency(self.tenant.id, activity.pk).status, Activity.STATUS_WITHDRAWN)

    def test_create_with_submit_records_first_transition(self):
        activity = self.make_activity(submit=True)
        activity.refresh_from_db()

        self.assertEqual(activity.status, Activity.STATUS_PENDING)
        self.assertEqual(activity.version, 1)
        record = TransitionRecord.objects.get(activity=activity)
        self.assertEqual((record.sequence_no, record.from_status, record.to_status), (1, "draft", "pending"))

        topics = list(DomainEvent.objects.filter(activity=activity).values_list("topic", "sequence_no"))
        self.assertEqual(
            topics,
            [(constants.TOPIC_ACTIVITY_CREATED, 0), (constants.TOPIC_ACTIVITY_SUBMITTED, 1)],
        )

    def test_request_info_then_resubmit_needs_new_proof(self):
        activity = self.make_activity(submit=True)
        engine.apply(self.tenant.id, activity.pk, sm.ACTION_REQUEST_INFO, self.actor(self.ece_verifier), comment="Need the signed copy")

        with self.assertRaises(InvalidTransition):
            engine.apply(self.tenant.id, activity.pk, sm.ACTION_RESUBMIT, self.actor(self.student))

        attach_proof(self.actor(self.student), activity.pk, self.proof_bytes("signed"), "application/pdf")
        result = engine.apply(self.tenant.id, activity.pk, sm.ACTION_RESUBMIT, self.actor(self.student))
        self.assertEqual((result.status, result.sequence_no), (Activity.STATUS_PENDING, 3))


class EngineRefusalTest(LedgerWorldMixin, TestCase):
    def setUp(self):
        self.build_world()
        self.activity = self.make_activity(submit=True)

    def assertUnchanged(self, status=Activity.STATUS_PENDING, version=1):
        self.activity.refresh_from_db()
        self.assertEqual(self.activity.status, status)
        self.assertEqual(self.activity.version, version)
        self.assertEqual(TransitionRecord.objects.filter(activity=self.activity).count(), version)

    def test_same_token_twice_second_loses(self):
        engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_APPROVE, self.actor(self.verifier), expected_sequence_no=1)

        with self.assertRaises(ConcurrentModification):
            engine.apply(
                self.tenant.id, self.activity.pk, sm.ACTION_REJECT, self.actor(self.ece_verifier),
                comment="Not eligible", expected_sequence_no=1,
            )
        self.assertUnchanged(status=Activity.STATUS_VERIFIED, version=2)

    def test_stale_read_loses_conditional_update(self):
        stale = Activity.objects.get(pk=self.activity.pk)
        engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_REJECT, self.actor(self.verifier), comment="Duplicate claim")

        # Second writer read before the first committed
        with mock.patch("activities.engine.load_activity", return_value=stale):
            with self.assertRaises(ConcurrentModification):
                engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_APPROVE, self.actor(self.verifier))
        self.assertUnchanged(status=Activity.STATUS_REJECTED, version=2)

    def test_owner_cannot_approve(self):
        with self.assertRaises(Unauthorized):
            engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_APPROVE, self.actor(self.student))
        self.assertUnchanged()

    def test_verifier_outside_department_cannot_approve(self):
        with self.assertRaises(Unauthorized):
            engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_APPROVE, self.actor(self.ece_verifier))
        self.assertUnchanged()

    def test_assigned_verifier_overrides_department(self):
        activity = self.make_activity(submit=True, assigned_verifier=self.ece_verifier)
        with self.assertRaises(Unauthorized):
            engine.apply(self.tenant.id, activity.pk, sm.ACTION_APPROVE, self.actor(self.verifier))
        result = engine.apply(self.tenant.id, activity.pk, sm.ACTION_APPROVE, self.actor(self.ece_verifier))
        self.assertEqual(result.status, Activity.STATUS_VERIFIED)

    def test_illegal_pair_is_invalid_before_authorization(self):
        # A student approving a Draft: the table check comes first
        draft = self.make_activity()
        with self.assertRaises(InvalidTransition):
            engine.apply(self.tenant.id, draft.pk, sm.ACTION_APPROVE, self.actor(self.student))

    def test_legal_pair_wrong_role_is_unauthorized(self):
        engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_APPROVE, self.actor(self.verifier))
        with self.assertRaises(Unauthorized):
            engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_WITHDRAW, self.actor(self.verifier))
        self.assertUnchanged(status=Activity.STATUS_VERIFIED, version=2)

    def test_reject_requires_comment(self):
        with self.assertRaises(InvalidTransition):
            engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_REJECT, self.actor(self.verifier), comment="   ")
        self.assertUnchanged()

    def test_submit_requires_proof_or_waiver(self):
        bare = self.make_activity(with_proof=False)
        with self.assertRaises(InvalidTransition):
            engine.apply(self.tenant.id, bare.pk, sm.ACTION_SUBMIT, self.actor(self.student))

        waived = self.make_activity(with_proof=False, proof_waived=True, waiver_reason="Offline event")
        result = engine.apply(self.tenant.id, waived.pk, sm.ACTION_SUBMIT, self.actor(self.student))
        self.assertEqual(result.status, Activity.STATUS_PENDING)

    def test_tampered_proof_blocks_submit(self):
        draft = self.make_activity()
        self.tamper_proof(draft.proof_refs.get())

        with self.assertRaises(ProofTampered):
            engine.apply(self.tenant.id, draft.pk, sm.ACTION_SUBMIT, self.actor(self.student))
        draft.refresh_from_db()
        self.assertEqual((draft.status, draft.version), (Activity.STATUS_DRAFT, 0))

    def test_other_tenant_sees_nothing(self):
        with self.assertRaises(NotFound):
            engine.apply(self.other_tenant.id, self.activity.pk, sm.ACTION_APPROVE, self.actor(self.outsider))
        with self.assertRaises(NotFound):
            engine.apply(self.tenant.id, "not-a-uuid", sm.ACTION_APPROVE, self.actor(self.verifier))

    def test_withdrawn_accepts_nothing(self):
        engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_REJECT, self.actor(self.verifier), comment="No proof of rank")
        engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_WITHDRAW, self.actor(self.admin))
        with self.assertRaises(InvalidTransition):
            engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_WITHDRAW, self.actor(self.admin))

    @override_settings(VTL_TRANSITION_TIMEOUT_SECONDS=-1)
    def test_timeout_rolls_back(self):
        with self.assertRaises(Timeout):
            engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_APPROVE, self.actor(self.verifier))
        self.assertUnchanged()
        self.assertFalse(DomainEvent.objects.filter(activity=self.activity, topic=constants.TOPIC_ACTIVITY_VERIFIED).exists())

    def test_lock_timeout_from_database_is_timeout(self):
        lock_error = OperationalError("canceling statement due to lock timeout")
        with mock.patch("activities.engine._apply", side_effect=lock_error):
            with self.assertRaises(Timeout):
                engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_APPROVE, self.actor(self.verifier))
        self.assertUnchanged()

    def test_other_database_errors_propagate(self):
        with mock.patch("activities.engine._apply", side_effect=OperationalError("server closed the connection")):
            with self.assertRaises(OperationalError):
                engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_APPROVE, self.actor(self.verifier))


class BulkApplyTest(LedgerWorldMixin, TestCase):
    def setUp(self):
        self.build_world()

    def test_partial_failure_is_reported_per_activity(self):
        first = self.make_activity(submit=True)
        second = self.make_activity(submit=True)
        draft = self.make_activity()

        results = engine.bulk_apply(
            self.tenant.id, [first.pk, draft.pk, second.pk, first.pk], sm.ACTION_APPROVE, self.actor(self.verifier)
        )

        self.assertEqual(len(results), 3, "Duplicate ids are applied once")
        by_id = {r["activity_id"]: r for r in results}
        self.assertTrue(by_id[str(first.pk)]["ok"])
        self.assertEqual(by_id[str(second.pk)]["sequence_no"], 2)
        self.assertFalse(by_id[str(draft.pk)]["ok"])
        self.assertEqual(by_id[str(draft.pk)]["error"]["code"], "invalid_transition")

        draft.refresh_from_db()
        self.assertEqual(draft.status, Activity.STATUS_DRAFT)
