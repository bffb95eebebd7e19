"""
Promotion campaign execution.

Moves every submitted/approved promotion record of a campaign onto the
student records, in fixed-size batches. A failure on one student is recorded
in the execution report and never stops the batch or the campaign; progress
is saved after every batch so an interrupted run can simply be started again.
"""
import logging
import math
from dataclasses import dataclass, replace
from typing import ClassVar, Dict, Optional, Tuple

from core.store import (
    PROMOTION_CAMPAIGNS, PROMOTION_EXECUTIONS, PROMOTION_RECORDS, STUDENTS,
)
from gradebook import config

from .choices import (
    CampaignStatus, ExecutionStatus, PromotionDecision, RecordStatus, StudentStatus,
)
from .exceptions import (
    CampaignAlreadyExecuted, CampaignCancelled, CampaignNotFound,
    NoRecordsToProcess, StudentNotFound,
)

logger = logging.getLogger(__name__)

# Records still waiting to be applied; executed ones are never picked up again
PENDING_STATUSES = [RecordStatus.SUBMITTED, RecordStatus.APPROVED]


# ============ Per-record outcomes ============

@dataclass(frozen=True)
class Promoted:
    record_id: str
    student_id: str
    result_field: ClassVar[str] = 'promoted'


@dataclass(frozen=True)
class Repeated:
    record_id: str
    student_id: str
    result_field: ClassVar[str] = 'repeated'


@dataclass(frozen=True)
class Graduated:
    record_id: str
    student_id: str
    result_field: ClassVar[str] = 'graduated'


@dataclass(frozen=True)
class Failed:
    record_id: str
    student_id: str
    student_name: str
    reason: str


# ============ Execution report ============

@dataclass(frozen=True)
class ExecutionReport:
    """Progress and results of one execution run, folded record by record."""
    campaign_id: str
    tenant_id: str
    total_students: int
    batch_size: int
    total_batches: int
    execution_id: Optional[str] = None
    status: str = ExecutionStatus.PROCESSING
    processed_students: int = 0
    success_count: int = 0
    failed_count: int = 0
    current_batch: int = 0
    promoted: int = 0
    repeated: int = 0
    graduated: int = 0
    errors: Tuple[Dict, ...] = ()

    @classmethod
    def start(cls, campaign_id, tenant_id, total_students, batch_size):
        return cls(
            campaign_id=campaign_id,
            tenant_id=tenant_id,
            total_students=total_students,
            batch_size=batch_size,
            total_batches=math.ceil(total_students / batch_size),
        )

    @property
    def results(self):
        return {
            'promoted': self.promoted,
            'repeated': self.repeated,
            'graduated': self.graduated,
            'failed': self.failed_count,
        }

    def fold(self, outcome, timestamp):
        """Return a new report with one more record accounted for."""
        if isinstance(outcome, Failed):
            error = {
                'student_id': outcome.student_id,
                'student_name': outcome.student_name,
                'error': outcome.reason,
                'timestamp': timestamp,
            }
            return replace(
                self,
                processed_students=self.processed_students + 1,
                failed_count=self.failed_count + 1,
                errors=self.errors + (error,),
            )

        result_field = outcome.result_field
        return replace(
            self,
            processed_students=self.processed_students + 1,
            success_count=self.success_count + 1,
            **{result_field: getattr(self, result_field) + 1},
        )

    def progress_fields(self):
        """Fields saved on the execution record after every batch."""
        return {
            'status': self.status,
            'processed_students': self.processed_students,
            'success_count': self.success_count,
            'failed_count': self.failed_count,
            'current_batch': self.current_batch,
            'results': self.results,
            'errors': [dict(e) for e in self.errors],
        }

    def to_dict(self):
        data = self.progress_fields()
        data.update({
            'execution_id': self.execution_id,
            'campaign_id': self.campaign_id,
            'tenant_id': self.tenant_id,
            'total_students': self.total_students,
            'batch_size': self.batch_size,
            'total_batches': self.total_batches,
        })
        return data


# ============ Executor ============

class PromotionExecutor:
    """
    Applies a campaign's promotion decisions to student records.

    Usage:
        executor = PromotionExecutor(DocumentStore())
        report = executor.execute(campaign_id, tenant_id='school_a', executed_by=user.pk)
    """

    def __init__(self, store, batch_size=None):
        self.store = store
        self.batch_size = batch_size or config.PROMOTION_BATCH_SIZE

    def prepare(self, campaign_id):
        """
        Check that a campaign can be executed.

        Returns:
            tuple: (campaign, pending promotion records)

        Raises:
            CampaignNotFound, CampaignAlreadyExecuted, CampaignCancelled,
            NoRecordsToProcess
        """
        campaign = self.store.get(PROMOTION_CAMPAIGNS, campaign_id)
        if campaign is None:
            raise CampaignNotFound(campaign_id)

        status = campaign.get('status')
        if status == CampaignStatus.EXECUTED:
            raise CampaignAlreadyExecuted(campaign_id)
        if status == CampaignStatus.CANCELLED:
            raise CampaignCancelled(campaign_id)

        records = self.store.query(
            PROMOTION_RECORDS,
            campaign_id=campaign_id,
            status__in=PENDING_STATUSES,
        )
        if not records:
            raise NoRecordsToProcess(campaign_id)

        return campaign, records

    def execute(self, campaign_id, tenant_id, executed_by, executed_by_name=''):
        """
        Execute every pending promotion record of a campaign.

        Per-student failures end up in the report's ``errors``; the campaign
        is marked executed once all batches have run either way.

        Returns:
            ExecutionReport
        """
        campaign, records = self.prepare(campaign_id)
        store = self.store

        report = ExecutionReport.start(campaign_id, tenant_id, len(records), self.batch_size)

        started_at = store.now()
        execution_id = store.add(PROMOTION_EXECUTIONS, {
            **report.to_dict(),
            'started_at': started_at,
            'executed_by': executed_by,
            'executed_by_name': executed_by_name,
            'created_at': started_at,
            'updated_at': started_at,
        })
        report = replace(report, execution_id=execution_id)

        # Written directly rather than via transition_campaign: prepare() only
        # rejects executed and cancelled campaigns, and an executing one resumes
        store.update(PROMOTION_CAMPAIGNS, campaign_id, {
            'status': CampaignStatus.EXECUTING,
            'execution_id': execution_id,
            'updated_at': started_at,
        })

        logger.info(
            f"Executing promotion campaign {campaign_id} ({tenant_id}): "
            f"{report.total_students} students in {report.total_batches} batch(es)"
        )

        for batch_number, start in enumerate(range(0, len(records), self.batch_size), 1):
            for record in records[start:start + self.batch_size]:
                outcome = self._process_record(campaign, record)
                report = report.fold(outcome, store.now())

            report = replace(report, current_batch=batch_number)
            store.update(PROMOTION_EXECUTIONS, execution_id, {
                **report.progress_fields(),
                'updated_at': store.now(),
            })
            logger.info(
                f"Promotion campaign {campaign_id}: batch {batch_number}/{report.total_batches} done, "
                f"{report.processed_students}/{report.total_students} processed, "
                f"{report.failed_count} failed"
            )

        report = replace(report, status=ExecutionStatus.COMPLETED)
        completed_at = store.now()
        store.update(PROMOTION_EXECUTIONS, execution_id, {
            **report.progress_fields(),
            'completed_at': completed_at,
            'updated_at': completed_at,
        })
        store.update(PROMOTION_CAMPAIGNS, campaign_id, {
            'status': CampaignStatus.EXECUTED,
            'executed_by': executed_by,
            'executed_by_name': executed_by_name,
            'executed_at': completed_at,
            'processed_students': report.success_count,
            'updated_at': completed_at,
        })

        logger.info(
            f"Promotion campaign {campaign_id} executed: {report.success_count} succeeded, "
            f"{report.failed_count} failed"
        )
        return report

    def _process_record(self, campaign, record):
        """Apply one record, turning any error into a Failed outcome."""
        try:
            return self._apply_record(campaign, record)
        except Exception as e:
            logger.error(
                f"Error processing student {record.get('student_id')} "
                f"for campaign {campaign['id']}: {e}",
                exc_info=True,
            )
            return Failed(
                record_id=record['id'],
                student_id=record.get('student_id', ''),
                student_name=record.get('student_name', ''),
                reason=str(e) or 'Unknown error',
            )

    def _apply_record(self, campaign, record):
        store = self.store
        student_id = record.get('student_id')
        student = store.get(STUDENTS, student_id) if student_id else None
        if student is None:
            raise StudentNotFound(student_id)

        decision = record.get('decision')
        now = store.now()
        updates = {'updated_at': now}

        if decision == PromotionDecision.PROMOTE:
            outcome = Promoted
            updates.update({
                'current_class_id': record.get('to_class_id'),
                'current_class_name': record.get('to_class_name'),
                'previous_class_id': record.get('from_class_id'),
                'previous_class_name': record.get('from_class_name'),
            })
            history = list(student.get('promotion_history') or [])
            # One entry per campaign, even when a run is repeated
            if not any(entry.get('campaign_id') == campaign['id'] for entry in history):
                history.append({
                    'campaign_id': campaign['id'],
                    'from_class': record.get('from_class_name'),
                    'to_class': record.get('to_class_name'),
                    'academic_year': campaign.get('academic_year'),
                    'promoted_at': now,
                })
            updates['promotion_history'] = history

        elif decision == PromotionDecision.REPEAT:
            outcome = Repeated

        elif decision == PromotionDecision.GRADUATE:
            outcome = Graduated
            updates.update({
                'status': StudentStatus.GRADUATED,
                'is_active': False,
                'graduated_at': now,
                'graduation_year': campaign.get('academic_year'),
                'graduation_class': record.get('from_class_name'),
                'final_average': record.get('average_score'),
            })

        else:
            raise ValueError(f"Unknown promotion decision: {decision}")

        store.update(STUDENTS, student_id, updates)
        store.update(PROMOTION_RECORDS, record['id'], {
            'status': RecordStatus.EXECUTED,
            'executed_at': now,
            'updated_at': now,
        })

        return outcome(record_id=record['id'], student_id=student_id)
