# vtl-backend/ledger/services.py
"""
Audit Ledger.

Append-only store of TransitionRecords keyed by
(tenant_id, activity_id, sequence_no) plus OperationalRecords for facts that
are not status changes. Nothing here mutates an Activity.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple
import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from activities import state_machine as sm
from activities.models import Activity
from core import constants
from core.exceptions import ConcurrentModification, LedgerInconsistency, NotFound
from .models import OperationalRecord, TransitionRecord

logger = logging.getLogger("vtl.ledger")


@dataclass
class HistoryPage:
    records: List[TransitionRecord]
    next_after: Optional[int]

    @property
    def has_more(self) -> bool:
        return self.next_after is not None


@dataclass
class FoldResult:
    status: str
    last_sequence_no: int
    problems: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


class AuditLedger:
    """
    Service object around the ledger tables. Stateless; the module-level
    `ledger` instance is what the rest of the project imports.
    """

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    def append(self, record: TransitionRecord) -> Tuple[TransitionRecord, bool]:
        """
        Append a transition record.

        Idempotent on (activity_id, sequence_no): replaying the same fact
        returns the stored row and created=False. A *different* fact under an
        existing key means another transition won the race.
        """
        existing = TransitionRecord.objects.filter(
            activity_id=record.activity_id,
            sequence_no=record.sequence_no,
        ).first()
        if existing is not None:
            return self._resolve_duplicate(existing, record), False

        try:
            with transaction.atomic():
                record.save()
        except IntegrityError:
            existing = TransitionRecord.objects.get(
                activity_id=record.activity_id,
                sequence_no=record.sequence_no,
            )
            return self._resolve_duplicate(existing, record), False

        return record, True

    def _resolve_duplicate(self, existing: TransitionRecord, candidate: TransitionRecord) -> TransitionRecord:
        if existing.same_fact_as(candidate):
            logger.info(
                f"Ledger append replayed: activity={existing.activity_id}, seq={existing.sequence_no}"
            )
            return existing
        raise ConcurrentModification(
            activity_id=str(existing.activity_id),
            sequence_no=existing.sequence_no,
        )

    def record_fact(self, kind: str, tenant=None, activity=None, actor=None, detail=None) -> OperationalRecord:
        fact = OperationalRecord.objects.create(
            tenant=tenant,
            activity=activity,
            kind=kind,
            actor=actor,
            detail=detail or {},
        )
        logger.info(
            f"Ledger fact recorded: kind={kind}, tenant={getattr(tenant, 'pk', None)}, "
            f"activity={getattr(activity, 'pk', None)}"
        )
        return fact

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def _get_activity(self, tenant_id, activity_id) -> Activity:
        try:
            return Activity.objects.get(pk=activity_id, tenant_id=tenant_id)
        except (Activity.DoesNotExist, ValueError, ValidationError):
            raise NotFound("Activity not found.", activity_id=str(activity_id))

    def history(self, tenant_id, activity_id, after_sequence_no: int = 0, limit: Optional[int] = None) -> HistoryPage:
        """
        Ordered transition records of one activity, paginated by sequence_no.
        Restartable: pass the previous page's next_after as after_sequence_no.
        """
        self._get_activity(tenant_id, activity_id)

        limit = limit or settings.VTL_HISTORY_PAGE_SIZE
        rows = list(
            TransitionRecord.objects
            .filter(tenant_id=tenant_id, activity_id=activity_id, sequence_no__gt=after_sequence_no)
            .select_related("actor")
            .order_by("sequence_no")[: limit + 1]
        )

        next_after = None
        if len(rows) > limit:
            rows = rows[:limit]
            next_after = rows[-1].sequence_no

        return HistoryPage(records=rows, next_after=next_after)

    def iter_history(self, tenant_id, activity_id) -> Iterable[TransitionRecord]:
        after = 0
        while True:
            page = self.history(tenant_id, activity_id, after_sequence_no=after)
            yield from page.records
            if not page.has_more:
                return
            after = page.next_after

    # -----------------------------------------------------------------
    # Integrity
    # -----------------------------------------------------------------

    @staticmethod
    def fold(records: Iterable[TransitionRecord]) -> FoldResult:
        """
        Replay records from the initial status through the transition table.
        """
        status = sm.INITIAL_STATUS
        expected_seq = 1
        problems = []

        for record in records:
            if record.sequence_no != expected_seq:
                problems.append(
                    f"sequence gap: expected {expected_seq}, found {record.sequence_no}"
                )
            if record.from_status != status:
                problems.append(
                    f"seq {record.sequence_no}: from_status {record.from_status} "
                    f"does not follow {status}"
                )
            target = sm.next_status(record.from_status, record.action)
            if target != record.to_status:
                problems.append(
                    f"seq {record.sequence_no}: {record.action} from {record.from_status} "
                    f"cannot reach {record.to_status}"
                )
            status = record.to_status
            expected_seq = record.sequence_no + 1

        return FoldResult(status=status, last_sequence_no=expected_seq - 1, problems=problems)

    def verify_consistency(self, tenant_id, activity_id) -> FoldResult:
        """
        Recompute status by folding history and compare with the stored
        activity. Raises LedgerInconsistency (and records it as an operational
        fact) on any disagreement. Never repairs anything.
        """
        activity = self._get_activity(tenant_id, activity_id)
        result = self.fold(self.iter_history(tenant_id, activity_id))

        problems = list(result.problems)
        if result.status != activity.status:
            problems.append(
                f"stored status {activity.status} != folded status {result.status}"
            )
        if result.last_sequence_no != activity.version:
            problems.append(
                f"stored version {activity.version} != last sequence_no {result.last_sequence_no}"
            )

        if problems:
            logger.error(
                f"Ledger inconsistency: activity={activity.pk}, tenant={tenant_id}, problems={problems}"
            )
            self.record_fact(
                constants.FACT_LEDGER_INCONSISTENCY,
                tenant=activity.tenant,
                activity=activity,
                detail={"problems": problems},
            )
            raise LedgerInconsistency(
                activity_id=str(activity.pk),
                problems=problems,
            )

        return result


ledger = AuditLedger()
