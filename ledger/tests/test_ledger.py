# ledger/tests/test_ledger.py
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase, override_settings

from activities import engine
from activities import state_machine as sm
from activities.models import Activity
from activities.tests.helpers import LedgerWorldMixin
from core import constants
from core.exceptions import ConcurrentModification, ImmutableRecord, LedgerInconsistency, NotFound
from ledger.models import OperationalRecord, TransitionRecord
from ledger.services import AuditLedger, ledger
from ledger.tasks import scan_ledger_integrity


class AppendTest(LedgerWorldMixin, TestCase):
    def setUp(self):
        self.build_world()
        self.activity = self.make_activity(submit=True)

    def _record(self, **overrides):
        values = dict(
            tenant=self.tenant,
            activity=self.activity,
            sequence_no=1,
            actor=self.student,
            actor_role="student",
            from_status="draft",
            to_status="pending",
            action="submit",
        )
        values.update(overrides)
        return TransitionRecord(**values)

    def test_replaying_same_fact_is_a_noop(self):
        record, created = ledger.append(self._record())
        self.assertFalse(created)
        self.assertEqual(TransitionRecord.objects.filter(activity=self.activity).count(), 1)
        self.assertEqual(record.sequence_no, 1)

    def test_different_fact_under_same_key_conflicts(self):
        with self.assertRaises(ConcurrentModification):
            ledger.append(self._record(actor=self.verifier, actor_role="verifier"))

    def test_records_cannot_be_changed_or_removed(self):
        record = TransitionRecord.objects.get(activity=self.activity)
        record.comment = "rewritten"
        with self.assertRaises(ImmutableRecord):
            record.save()
        with self.assertRaises(ImmutableRecord):
            record.delete()
        with self.assertRaises(ImmutableRecord):
            TransitionRecord.objects.filter(pk=record.pk).update(comment="rewritten")
        with self.assertRaises(ImmutableRecord):
            OperationalRecord.objects.all().delete()


class HistoryTest(LedgerWorldMixin, TestCase):
    def setUp(self):
        self.build_world()
        self.activity = self.make_activity(submit=True)
        engine.apply(self.tenant.id, self.activity.pk, sm.ACTION_REQUEST_INFO, self.actor(self.verifier), comment="Need more")
        self.activity.refresh_from_db()

    def test_history_is_ordered(self):
        page = ledger.history(self.tenant.id, self.activity.pk)
        self.assertEqual([r.sequence_no for r in page.records], [1, 2])
        self.assertFalse(page.has_more)

    def test_history_paginates_by_sequence(self):
        first = ledger.history(self.tenant.id, self.activity.pk, limit=1)
        self.assertEqual([r.sequence_no for r in first.records], [1])
        self.assertEqual(first.next_after, 1)

        second = ledger.history(self.tenant.id, self.activity.pk, after_sequence_no=first.next_after, limit=1)
        self.assertEqual([r.sequence_no for r in second.records], [2])
        self.assertFalse(second.has_more)

    @override_settings(VTL_HISTORY_PAGE_SIZE=1)
    def test_iter_history_walks_every_page(self):
        self.assertEqual([r.sequence_no for r in ledger.iter_history(self.tenant.id, self.activity.pk)], [1, 2])

    def test_history_is_tenant_scoped(self):
        with self.assertRaises(NotFound):
            ledger.history(self.other_tenant.id, self.activity.pk)


class FoldTest(LedgerWorldMixin, TestCase):
    def setUp(self):
        self.build_world()

    def test_fold_of_empty_history_is_draft(self):
        result = AuditLedger.fold([])
        self.assertEqual((result.status, result.last_sequence_no), (Activity.STATUS_DRAFT, 0))
        self.assertTrue(result.ok)

    def test_fold_flags_impossible_transition(self):
        activity = self.make_activity()
        bogus = TransitionRecord(
            tenant=self.tenant,
            activity=activity,
            sequence_no=1,
            actor=self.student,
            actor_role="student",
            from_status="draft",
            to_status="verified",
            action="submit",
        )
        result = AuditLedger.fold([bogus])
        self.assertFalse(result.ok)
        self.assertEqual(result.status, Activity.STATUS_VERIFIED)

    def test_stored_status_matches_fold_after_transitions(self):
        activity = self.make_activity(submit=True)
        engine.apply(self.tenant.id, activity.pk, sm.ACTION_REJECT, self.actor(self.verifier), comment="Wrong year")

        result = ledger.verify_consistency(self.tenant.id, activity.pk)
        self.assertEqual((result.status, result.last_sequence_no), (Activity.STATUS_REJECTED, 2))

    def test_mismatch_is_raised_and_recorded(self):
        activity = self.make_activity(submit=True)
        # Simulate a write that bypassed the engine
        Activity.objects.filter(pk=activity.pk).update(status=Activity.STATUS_VERIFIED)

        with self.assertRaises(LedgerInconsistency) as ctx:
            ledger.verify_consistency(self.tenant.id, activity.pk)
        self.assertTrue(ctx.exception.context["problems"])

        fact = OperationalRecord.objects.get(activity=activity, kind=constants.FACT_LEDGER_INCONSISTENCY)
        self.assertIn("problems", fact.detail)

        activity.refresh_from_db()
        self.assertEqual(activity.status, Activity.STATUS_VERIFIED, "Detection never repairs")


class IntegrityScanTest(LedgerWorldMixin, TestCase):
    def setUp(self):
        self.build_world()
        self.good = self.make_activity(submit=True)
        self.bad = self.make_activity(submit=True)
        Activity.objects.filter(pk=self.bad.pk).update(version=7)

    def test_scan_task_reports_inconsistent_activities(self):
        summary = scan_ledger_integrity(tenant_id=self.tenant.id)
        self.assertEqual(summary["checked"], 2)
        self.assertEqual(summary["inconsistent"], [str(self.bad.pk)])

    def test_command_fails_on_inconsistency(self):
        out = StringIO()
        with self.assertRaises(CommandError):
            call_command("verify_ledger", "--tenant", "iitx", stdout=out)
        self.assertIn(str(self.bad.pk), out.getvalue())

    def test_command_succeeds_for_consistent_activity(self):
        out = StringIO()
        call_command("verify_ledger", "--activity", str(self.good.pk), stdout=out)
        self.assertIn("Checked 1 activities, 0 inconsistent.", out.getvalue())

    def test_command_rejects_unknown_tenant(self):
        with self.assertRaises(CommandError):
            call_command("verify_ledger", "--tenant", "nope", stdout=StringIO())
