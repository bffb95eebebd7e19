import json
from unittest import mock

from django.test import RequestFactory, SimpleTestCase

from core.store import (
    InMemoryRecordStore, PROMOTION_CAMPAIGNS, PROMOTION_EXECUTIONS, PROMOTION_RECORDS, STUDENTS,
)
from gradebook.results import SubjectScore

from .campaigns import can_transition, cancel_campaign, transition_campaign
from .choices import (
    CampaignStatus, EligibilityCategory, ExecutionStatus, PromotionMode, RecordStatus,
)
from .criteria import PromotionSettings
from .eligibility import (
    StudentPerformance, analyze_eligibility, build_student_performance, categorize_students,
)
from .exceptions import (
    CampaignAlreadyExecuted, CampaignCancelled, CampaignNotFound,
    InvalidCampaignTransition, NoRecordsToProcess,
)
from .executor import ExecutionReport, Failed, Graduated, Promoted, PromotionExecutor
from .services import analyze_class_promotions
from .tasks import execute_promotion_campaign
from . import views


def performance(**kwargs):
    data = {
        'student_id': 's1',
        'student_name': 'Ama Mensah',
        'average_score': 65.0,
        'total_subjects': 8,
        'subjects_passed': 7,
        'subjects_failed': 1,
    }
    data.update(kwargs)
    return StudentPerformance(**data)


def settings_for(mode='automatic', **criteria):
    return PromotionSettings.from_dict({'mode': mode, 'criteria': criteria})


class PromotionSettingsTest(SimpleTestCase):
    """Tests for parsing stored promotion settings."""

    def test_full_settings(self):
        settings = PromotionSettings.from_dict({
            'mode': 'hybrid',
            'criteria': {
                'minimum_average_score': {'enabled': True, 'value': 50},
                'minimum_subjects_passed': {'enabled': False, 'value': 5},
                'core_subjects_requirement': {'enabled': True, 'type': 'minimum', 'minimum_required': 2},
                'attendance_requirement': {'enabled': True, 'minimum_percentage': '75'},
            },
        })
        criteria = settings.criteria
        self.assertEqual(settings.mode, PromotionMode.HYBRID)
        self.assertTrue(criteria.minimum_average_score.is_active)
        self.assertEqual(criteria.minimum_average_score.value, 50.0)
        self.assertFalse(criteria.minimum_subjects_passed.is_active)
        self.assertEqual(criteria.core_subjects_requirement.rule, 'minimum')
        self.assertEqual(criteria.core_subjects_requirement.minimum_required, 2)
        self.assertEqual(criteria.attendance_requirement.minimum_percentage, 75.0)

    def test_defaults_to_manual(self):
        settings = PromotionSettings.from_dict(None)
        self.assertEqual(settings.mode, PromotionMode.MANUAL)
        self.assertIsNone(settings.criteria)

    def test_unknown_mode(self):
        with self.assertRaises(ValueError):
            PromotionSettings.from_dict({'mode': 'lottery'})


class EligibilityTest(SimpleTestCase):
    """Tests for promotion eligibility analysis."""

    def test_manual_mode_always_needs_review(self):
        settings = settings_for('manual', minimum_average_score={'enabled': True, 'value': 40})
        result = analyze_eligibility(performance(average_score=99), settings, [])
        self.assertEqual(result.category, EligibilityCategory.REVIEW_REQUIRED)
        self.assertFalse(result.is_eligible)
        self.assertEqual(result.failed_criteria, ['Manual review required'])

    def test_high_average_is_auto_eligible(self):
        settings = settings_for(minimum_average_score={'enabled': True, 'value': 40})
        result = analyze_eligibility(performance(average_score=92), settings, [])
        self.assertTrue(result.is_eligible)
        self.assertEqual(result.category, EligibilityCategory.AUTO_ELIGIBLE)
        self.assertEqual(result.passed_criteria, ['Average score: 92% (≥40%)'])
        self.assertEqual(result.failed_criteria, [])

    def test_no_criteria(self):
        settings = PromotionSettings.from_dict({'mode': 'automatic'})
        result = analyze_eligibility(performance(average_score=10), settings, [])
        self.assertEqual(result.category, EligibilityCategory.AUTO_ELIGIBLE)
        self.assertEqual(result.passed_criteria, ['No criteria configured'])

    def test_failed_average_automatic(self):
        settings = settings_for(minimum_average_score={'enabled': True, 'value': 50})
        result = analyze_eligibility(performance(average_score=45.5), settings, [])
        self.assertFalse(result.is_eligible)
        self.assertEqual(result.category, EligibilityCategory.AUTO_INELIGIBLE)
        self.assertFalse(result.criteria_results['passed_minimum_average'])
        self.assertEqual(result.failed_criteria, ['Average score: 45.5% (required: 50%)'])

    def test_failed_criteria_hybrid_needs_review(self):
        settings = settings_for('hybrid', minimum_subjects_passed={'enabled': True, 'value': 8})
        result = analyze_eligibility(performance(subjects_passed=7), settings, [])
        self.assertEqual(result.category, EligibilityCategory.REVIEW_REQUIRED)
        self.assertEqual(result.failed_criteria, ['Subjects passed: 7/8 (required: 8)'])

    def test_disabled_criteria_are_ignored(self):
        settings = settings_for(
            minimum_average_score={'enabled': False, 'value': 90},
            minimum_subjects_passed={'enabled': True},
        )
        result = analyze_eligibility(performance(average_score=50), settings, [])
        self.assertTrue(result.is_eligible)
        self.assertEqual(result.passed_criteria, [])

    def test_all_core_subjects(self):
        settings = settings_for(core_subjects_requirement={'enabled': True, 'type': 'all'})
        passed = analyze_eligibility(performance(), settings, ['maths', 'english'])
        self.assertEqual(passed.passed_criteria, ['All core subjects passed'])

        failed = analyze_eligibility(
            performance(failed_core_subjects=('Mathematics',)), settings, ['maths', 'english'],
        )
        self.assertFalse(failed.criteria_results['passed_core_subjects'])
        self.assertEqual(failed.failed_criteria, ['Failed core subjects: Mathematics'])

    def test_minimum_core_subjects(self):
        settings = settings_for(
            core_subjects_requirement={'enabled': True, 'type': 'minimum', 'minimum_required': 3},
        )
        core = ['maths', 'english', 'science', 'social']
        passed = analyze_eligibility(performance(failed_core_subjects=('Science',)), settings, core)
        self.assertTrue(passed.is_eligible)
        self.assertEqual(passed.passed_criteria, ['Core subjects passed: 3/4'])

        failed = analyze_eligibility(
            performance(failed_core_subjects=('Science', 'Mathematics')), settings, core,
        )
        self.assertFalse(failed.is_eligible)
        self.assertEqual(failed.failed_criteria, ['Core subjects passed: 2/4 (required: 3)'])

    def test_attendance_only_judged_when_recorded(self):
        settings = settings_for(attendance_requirement={'enabled': True, 'minimum_percentage': 75})
        unrecorded = analyze_eligibility(performance(attendance=None), settings, [])
        self.assertTrue(unrecorded.is_eligible)
        self.assertEqual(unrecorded.passed_criteria, [])

        low = analyze_eligibility(performance(attendance=60), settings, [])
        self.assertFalse(low.criteria_results['passed_attendance'])
        self.assertEqual(low.failed_criteria, ['Attendance: 60% (required: 75%)'])

    def test_every_failure_reported(self):
        settings = settings_for(
            minimum_average_score={'enabled': True, 'value': 50},
            minimum_subjects_passed={'enabled': True, 'value': 6},
            attendance_requirement={'enabled': True, 'minimum_percentage': 80},
        )
        result = analyze_eligibility(
            performance(average_score=30, subjects_passed=2, attendance=90), settings, [],
        )
        self.assertEqual(len(result.failed_criteria), 2)
        self.assertEqual(result.passed_criteria, ['Attendance: 90% (≥80%)'])

    def test_categorize_students(self):
        settings = settings_for('hybrid', minimum_average_score={'enabled': True, 'value': 50})
        groups = categorize_students(
            [
                performance(student_id='a', average_score=80),
                performance(student_id='b', average_score=40),
                performance(student_id='c', average_score=50),
            ],
            settings,
            [],
        )
        self.assertEqual([p.student_id for p, _ in groups['auto_eligible']], ['a', 'c'])
        self.assertEqual([p.student_id for p, _ in groups['review_required']], ['b'])
        self.assertEqual(groups['auto_ineligible'], [])

    def test_build_student_performance(self):
        scores = [
            SubjectScore('maths', 'Mathematics', 35, 35, 'F9', 100),
            SubjectScore('english', 'English', 70, 70, 'B2', 100),
            SubjectScore('art', 'Art', 18, 36, 'F9', 50),
            SubjectScore('french', 'French', 0, 0, '', 100, is_absent=True),
        ]
        result = build_student_performance(
            's1', 'Ama Mensah', scores, core_subject_ids=['maths', 'english'], attendance=88.0,
        )
        self.assertEqual(result.total_subjects, 3)
        self.assertEqual(result.average_score, 47.0)
        self.assertEqual(result.subjects_passed, 1)
        self.assertEqual(result.subjects_failed, 2)
        self.assertEqual(result.failed_subjects, ('Mathematics', 'Art'))
        self.assertEqual(result.failed_core_subjects, ('Mathematics',))
        self.assertEqual(result.attendance, 88.0)


class CampaignTransitionTest(SimpleTestCase):
    """Tests for the campaign lifecycle."""

    def setUp(self):
        self.store = InMemoryRecordStore({
            PROMOTION_CAMPAIGNS: {
                'draft': {'status': 'draft'},
                'review': {'status': 'in_review'},
                'done': {'status': 'executed'},
            },
        })

    def test_allowed_transitions(self):
        self.assertTrue(can_transition(CampaignStatus.DRAFT, CampaignStatus.OPEN))
        self.assertTrue(can_transition(CampaignStatus.IN_REVIEW, CampaignStatus.OPEN))
        self.assertTrue(can_transition(CampaignStatus.APPROVED, CampaignStatus.EXECUTING))
        self.assertFalse(can_transition(CampaignStatus.DRAFT, CampaignStatus.APPROVED))
        self.assertFalse(can_transition(CampaignStatus.EXECUTED, CampaignStatus.CANCELLED))

    def test_transition_saves_status(self):
        campaign = transition_campaign(self.store, 'review', CampaignStatus.APPROVED, actor_id=7)
        self.assertEqual(campaign['status'], CampaignStatus.APPROVED)
        stored = self.store.get(PROMOTION_CAMPAIGNS, 'review')
        self.assertEqual(stored['status'], 'approved')
        self.assertEqual(stored['updated_by'], 7)

    def test_invalid_transition(self):
        with self.assertRaises(InvalidCampaignTransition):
            transition_campaign(self.store, 'draft', CampaignStatus.EXECUTED)
        self.assertEqual(self.store.get(PROMOTION_CAMPAIGNS, 'draft')['status'], 'draft')

    def test_cancel(self):
        cancel_campaign(self.store, 'draft')
        self.assertEqual(self.store.get(PROMOTION_CAMPAIGNS, 'draft')['status'], 'cancelled')
        with self.assertRaises(InvalidCampaignTransition):
            cancel_campaign(self.store, 'done')

    def test_missing_campaign(self):
        with self.assertRaises(CampaignNotFound):
            transition_campaign(self.store, 'nope', CampaignStatus.OPEN)


def promotion_record(student_id, decision, status='approved', campaign_id='camp1', **kwargs):
    data = {
        'campaign_id': campaign_id,
        'student_id': student_id,
        'student_name': f'Student {student_id}',
        'decision': decision,
        'from_class_id': 'jhs1',
        'from_class_name': 'JHS 1',
        'to_class_id': 'jhs2',
        'to_class_name': 'JHS 2',
        'status': status,
    }
    data.update(kwargs)
    return data


def student(name, class_id='jhs1', class_name='JHS 1'):
    return {
        'name': name,
        'current_class_id': class_id,
        'current_class_name': class_name,
        'status': 'active',
        'is_active': True,
    }


class ExecutionReportTest(SimpleTestCase):
    """Tests for folding outcomes into the execution report."""

    def test_fold(self):
        report = ExecutionReport.start('camp1', 'school_a', total_students=3, batch_size=50)
        self.assertEqual(report.total_batches, 1)

        report = report.fold(Promoted('r1', 's1'), 't1')
        report = report.fold(Graduated('r2', 's2'), 't2')
        report = report.fold(Failed('r3', 's3', 'Yaw', 'Student not found'), 't3')

        self.assertEqual(report.processed_students, 3)
        self.assertEqual(report.success_count, 2)
        self.assertEqual(report.failed_count, 1)
        self.assertEqual(report.results, {'promoted': 1, 'repeated': 0, 'graduated': 1, 'failed': 1})
        self.assertEqual(report.errors, ({
            'student_id': 's3', 'student_name': 'Yaw', 'error': 'Student not found', 'timestamp': 't3',
        },))

    def test_fold_returns_new_report(self):
        report = ExecutionReport.start('camp1', 'school_a', total_students=1, batch_size=50)
        report.fold(Promoted('r1', 's1'), 't1')
        self.assertEqual(report.processed_students, 0)


class PromotionExecutorTest(SimpleTestCase):
    """Tests for campaign execution."""

    def setUp(self):
        self.store = InMemoryRecordStore({
            PROMOTION_CAMPAIGNS: {
                'camp1': {'name': 'End of year', 'academic_year': '2024/2025', 'status': 'approved'},
            },
            STUDENTS: {
                's1': student('Ama Mensah'),
                's2': student('Kofi Boateng'),
            },
            PROMOTION_RECORDS: {
                'r1': promotion_record('s1', 'promote'),
                'r2': promotion_record('s2', 'repeat', status='submitted'),
                'r3': promotion_record('missing', 'promote'),
            },
        })
        self.executor = PromotionExecutor(self.store)

    def execute(self):
        return self.executor.execute('camp1', 'school_a', executed_by=1, executed_by_name='Head Teacher')

    def test_missing_student_does_not_stop_campaign(self):
        with self.assertLogs('promotions.executor', level='ERROR'):
            report = self.execute()

        self.assertEqual(report.success_count, 2)
        self.assertEqual(report.failed_count, 1)
        self.assertEqual(len(report.errors), 1)
        self.assertEqual(report.errors[0]['student_id'], 'missing')
        self.assertEqual(report.errors[0]['student_name'], 'Student missing')
        self.assertEqual(report.errors[0]['error'], 'Student not found')

        self.assertEqual(self.store.get(PROMOTION_RECORDS, 'r1')['status'], RecordStatus.EXECUTED)
        self.assertEqual(self.store.get(PROMOTION_RECORDS, 'r2')['status'], RecordStatus.EXECUTED)
        # Failed records stay pending for the next run
        self.assertEqual(self.store.get(PROMOTION_RECORDS, 'r3')['status'], 'approved')

    def test_campaign_and_execution_completed(self):
        with self.assertLogs('promotions.executor', level='ERROR'):
            report = self.execute()

        campaign = self.store.get(PROMOTION_CAMPAIGNS, 'camp1')
        self.assertEqual(campaign['status'], CampaignStatus.EXECUTED)
        self.assertEqual(campaign['execution_id'], report.execution_id)
        self.assertEqual(campaign['executed_by'], 1)
        self.assertEqual(campaign['executed_by_name'], 'Head Teacher')
        self.assertEqual(campaign['processed_students'], 2)
        self.assertIn('executed_at', campaign)

        execution = self.store.get(PROMOTION_EXECUTIONS, report.execution_id)
        self.assertEqual(execution['status'], ExecutionStatus.COMPLETED)
        self.assertEqual(execution['campaign_id'], 'camp1')
        self.assertEqual(execution['tenant_id'], 'school_a')
        self.assertEqual(execution['total_students'], 3)
        self.assertEqual(execution['success_count'], 2)
        self.assertEqual(execution['failed_count'], 1)
        self.assertEqual(execution['results'], {'promoted': 1, 'repeated': 1, 'graduated': 0, 'failed': 1})
        self.assertEqual(len(execution['errors']), 1)
        self.assertIn('completed_at', execution)

    def test_promote_moves_class_and_records_history(self):
        with self.assertLogs('promotions.executor', level='ERROR'):
            self.execute()

        promoted = self.store.get(STUDENTS, 's1')
        self.assertEqual(promoted['current_class_id'], 'jhs2')
        self.assertEqual(promoted['current_class_name'], 'JHS 2')
        self.assertEqual(promoted['previous_class_id'], 'jhs1')
        self.assertEqual(promoted['previous_class_name'], 'JHS 1')
        self.assertEqual(len(promoted['promotion_history']), 1)
        entry = promoted['promotion_history'][0]
        self.assertEqual(entry['campaign_id'], 'camp1')
        self.assertEqual(entry['from_class'], 'JHS 1')
        self.assertEqual(entry['to_class'], 'JHS 2')
        self.assertEqual(entry['academic_year'], '2024/2025')

    def test_repeat_keeps_class(self):
        with self.assertLogs('promotions.executor', level='ERROR'):
            self.execute()

        repeated = self.store.get(STUDENTS, 's2')
        self.assertEqual(repeated['current_class_id'], 'jhs1')
        self.assertNotIn('previous_class_id', repeated)
        self.assertNotIn('promotion_history', repeated)

    def test_graduate(self):
        store = InMemoryRecordStore({
            PROMOTION_CAMPAIGNS: {'camp1': {'academic_year': '2024/2025', 'status': 'approved'}},
            STUDENTS: {'s1': student('Esi Owusu', 'shs3', 'SHS 3')},
            PROMOTION_RECORDS: {
                'r1': promotion_record(
                    's1', 'graduate', from_class_id='shs3', from_class_name='SHS 3',
                    to_class_id=None, to_class_name=None, average_score=68.5,
                ),
            },
        })
        report = PromotionExecutor(store).execute('camp1', 'school_a', executed_by=1)

        self.assertEqual(report.results['graduated'], 1)
        graduate = store.get(STUDENTS, 's1')
        self.assertEqual(graduate['status'], 'graduated')
        self.assertFalse(graduate['is_active'])
        self.assertEqual(graduate['graduation_year'], '2024/2025')
        self.assertEqual(graduate['graduation_class'], 'SHS 3')
        self.assertEqual(graduate['final_average'], 68.5)
        self.assertIn('graduated_at', graduate)
        # Class pointers are left alone
        self.assertEqual(graduate['current_class_id'], 'shs3')

    def test_unknown_decision_fails_record(self):
        self.store.update(PROMOTION_RECORDS, 'r1', {'decision': 'expel'})
        with self.assertLogs('promotions.executor', level='ERROR'):
            report = self.execute()

        self.assertEqual(report.failed_count, 2)
        messages = [e['error'] for e in report.errors]
        self.assertIn('Unknown promotion decision: expel', messages)
        self.assertEqual(self.store.get(STUDENTS, 's1')['current_class_id'], 'jhs1')

    def test_progress_saved_after_every_batch(self):
        records = {f'r{i}': promotion_record('s1', 'repeat') for i in range(5)}
        store = InMemoryRecordStore({
            PROMOTION_CAMPAIGNS: {'camp1': {'status': 'approved'}},
            STUDENTS: {'s1': student('Ama Mensah')},
            PROMOTION_RECORDS: records,
        })
        executor = PromotionExecutor(store, batch_size=2)

        with mock.patch.object(store, 'update', wraps=store.update) as update:
            report = executor.execute('camp1', 'school_a', executed_by=1)

        execution_updates = [c.args[2] for c in update.call_args_list if c.args[0] == PROMOTION_EXECUTIONS]
        # Three batches plus the completion update
        self.assertEqual(len(execution_updates), 4)
        self.assertEqual(
            [u['processed_students'] for u in execution_updates[:3]],
            [2, 4, 5],
        )
        self.assertEqual([u['current_batch'] for u in execution_updates[:3]], [1, 2, 3])
        self.assertEqual(execution_updates[-1]['status'], ExecutionStatus.COMPLETED)
        self.assertEqual(report.total_batches, 3)
        self.assertEqual(report.batch_size, 2)

    def test_default_batch_size(self):
        self.assertEqual(PromotionExecutor(self.store).batch_size, 50)

    def test_campaign_not_found(self):
        with self.assertRaises(CampaignNotFound):
            self.executor.execute('nope', 'school_a', executed_by=1)

    def test_already_executed(self):
        self.store.update(PROMOTION_CAMPAIGNS, 'camp1', {'status': 'executed'})
        with self.assertRaises(CampaignAlreadyExecuted):
            self.execute()
        self.assertEqual(self.store.query(PROMOTION_EXECUTIONS), [])

    def test_cancelled(self):
        self.store.update(PROMOTION_CAMPAIGNS, 'camp1', {'status': 'cancelled'})
        with self.assertRaises(CampaignCancelled):
            self.execute()

    def test_unapproved_campaign_is_executed(self):
        """Only executed and cancelled campaigns are refused by the executor."""
        self.store.update(PROMOTION_CAMPAIGNS, 'camp1', {'status': 'open'})
        self.store.update(PROMOTION_RECORDS, 'r3', {'status': 'rejected'})
        report = self.execute()
        self.assertEqual(report.success_count, 2)
        self.assertEqual(self.store.get(PROMOTION_CAMPAIGNS, 'camp1')['status'], 'executed')

    def test_no_pending_records(self):
        for record_id in ('r1', 'r2', 'r3'):
            self.store.update(PROMOTION_RECORDS, record_id, {'status': 'executed'})
        with self.assertRaises(NoRecordsToProcess):
            self.execute()
        self.assertEqual(self.store.query(PROMOTION_EXECUTIONS), [])
        self.assertEqual(self.store.get(PROMOTION_CAMPAIGNS, 'camp1')['status'], 'approved')

    def test_draft_records_are_not_executed(self):
        self.store.update(PROMOTION_RECORDS, 'r3', {'status': 'draft'})
        report = self.execute()
        self.assertEqual(report.total_students, 2)
        self.assertEqual(report.failed_count, 0)

    def test_interrupted_run_resumes(self):
        """A campaign left executing picks up only the records not yet executed."""
        self.store.update(PROMOTION_CAMPAIGNS, 'camp1', {'status': 'executing'})
        self.store.update(PROMOTION_RECORDS, 'r1', {'status': 'executed'})
        self.store.update(PROMOTION_RECORDS, 'r3', {'status': 'rejected'})
        self.store.update(STUDENTS, 's1', {
            'current_class_id': 'jhs2',
            'promotion_history': [{'campaign_id': 'camp1', 'to_class': 'JHS 2'}],
        })

        report = self.execute()

        self.assertEqual(report.total_students, 1)
        self.assertEqual(report.results['repeated'], 1)
        self.assertEqual(len(self.store.get(STUDENTS, 's1')['promotion_history']), 1)
        self.assertEqual(self.store.get(PROMOTION_CAMPAIGNS, 'camp1')['status'], 'executed')

    def test_promotion_history_not_duplicated(self):
        self.store.update(STUDENTS, 's1', {
            'promotion_history': [{'campaign_id': 'camp1', 'to_class': 'JHS 2'}],
        })
        self.store.update(PROMOTION_RECORDS, 'r3', {'status': 'rejected'})
        self.execute()
        self.assertEqual(len(self.store.get(STUDENTS, 's1')['promotion_history']), 1)


class AnalyzeClassPromotionsTest(SimpleTestCase):
    """Tests for class-wide promotion analysis."""

    def test_groups_class(self):
        def score(student_id, subject_id, percentage):
            return {
                'student_id': student_id, 'term_id': 't3', 'subject_id': subject_id,
                'subject_name': subject_id.title(), 'total': percentage,
                'percentage': percentage, 'max_score': 100,
            }

        store = InMemoryRecordStore({
            STUDENTS: {
                's1': {'name': 'Ama Mensah', 'current_class_id': 'jhs1', 'is_active': True},
                's2': {'name': 'Kofi Boateng', 'current_class_id': 'jhs1', 'is_active': True},
                's3': {'name': 'Other Class', 'current_class_id': 'jhs2', 'is_active': True},
            },
            'subject_scores': {
                'a': score('s1', 'maths', 80),
                'b': score('s1', 'english', 70),
                'c': score('s2', 'maths', 30),
                'd': score('s2', 'english', 45),
            },
            'student_results': {
                'x': {'student_id': 's2', 'term_id': 't3', 'attendance': 95.0},
            },
        })
        settings = settings_for(
            'hybrid',
            minimum_average_score={'enabled': True, 'value': 50},
            core_subjects_requirement={'enabled': True, 'type': 'all'},
        )

        groups = analyze_class_promotions(store, 'jhs1', 't3', settings, ['maths'])

        eligible = groups[EligibilityCategory.AUTO_ELIGIBLE]
        review = groups[EligibilityCategory.REVIEW_REQUIRED]
        self.assertEqual([p.student_id for p, _ in eligible], ['s1'])
        self.assertEqual([p.student_id for p, _ in review], ['s2'])

        kofi, result = review[0]
        self.assertEqual(kofi.average_score, 37.5)
        self.assertEqual(kofi.failed_core_subjects, ('Maths',))
        self.assertEqual(kofi.attendance, 95.0)
        self.assertEqual(len(result.failed_criteria), 2)


class ExecutePromotionTaskTest(SimpleTestCase):
    """Tests for the Celery task wrapper."""

    def setUp(self):
        self.store = InMemoryRecordStore({
            PROMOTION_CAMPAIGNS: {'camp1': {'status': 'approved'}},
            STUDENTS: {'s1': student('Ama Mensah')},
            PROMOTION_RECORDS: {'r1': promotion_record('s1', 'promote')},
        })
        schema_patcher = mock.patch('promotions.tasks.schema_context')
        self.schema_context = schema_patcher.start()
        self.addCleanup(schema_patcher.stop)
        store_patcher = mock.patch('core.store.DocumentStore', return_value=self.store)
        store_patcher.start()
        self.addCleanup(store_patcher.stop)

    def test_runs_in_tenant_schema(self):
        result = execute_promotion_campaign('camp1', 'school_a', 1, 'Head Teacher')

        self.schema_context.assert_called_once_with('school_a')
        self.assertTrue(result['success'])
        self.assertEqual(result['success_count'], 1)
        self.assertEqual(result['results']['promoted'], 1)
        execution = self.store.get(PROMOTION_EXECUTIONS, result['execution_id'])
        self.assertEqual(execution['tenant_id'], 'school_a')
        self.assertEqual(execution['executed_by_name'], 'Head Teacher')

    def test_precondition_failure_returned(self):
        self.store.update(PROMOTION_CAMPAIGNS, 'camp1', {'status': 'executed'})
        with self.assertLogs('promotions.tasks', level='WARNING'):
            result = execute_promotion_campaign('camp1', 'school_a', 1, 'Head Teacher')
        self.assertEqual(result, {'success': False, 'error': 'Campaign already executed'})


class PromotionViewsTest(SimpleTestCase):
    """Tests for the promotion JSON endpoints."""

    def setUp(self):
        self.factory = RequestFactory()
        self.store = InMemoryRecordStore({
            PROMOTION_CAMPAIGNS: {
                'camp1': {'status': 'approved'},
                'done': {'status': 'executed'},
            },
            PROMOTION_RECORDS: {'r1': promotion_record('s1', 'promote')},
            PROMOTION_EXECUTIONS: {
                'exec1': {'campaign_id': 'camp1', 'status': 'processing', 'processed_students': 10},
            },
        })
        for target, kwargs in (
            ('promotions.views.DocumentStore', {'return_value': self.store}),
            ('promotions.views.connection', {'schema_name': 'school_a'}),
            ('promotions.views.execute_promotion_campaign', {}),
        ):
            patcher = mock.patch(target, **kwargs)
            patched = patcher.start()
            self.addCleanup(patcher.stop)
            if target.endswith('execute_promotion_campaign'):
                self.task = patched
        self.task.delay.return_value.id = 'task-123'

    def admin(self):
        return mock.Mock(
            is_authenticated=True, is_superuser=True, pk=1,
            get_full_name=mock.Mock(return_value='Head Teacher'),
        )

    def post(self, campaign_id, user=None):
        request = self.factory.post(f'/promotions/campaigns/{campaign_id}/execute/')
        request.user = user or self.admin()
        return views.execute_campaign(request, campaign_id)

    def test_execute_queues_task(self):
        response = self.post('camp1')

        self.assertEqual(response.status_code, 202)
        data = json.loads(response.content)
        self.assertTrue(data['success'])
        self.assertEqual(data['task_id'], 'task-123')
        self.assertEqual(data['total_students'], 1)
        self.task.delay.assert_called_once_with('camp1', 'school_a', 1, 'Head Teacher')

    def test_execute_unknown_campaign(self):
        response = self.post('nope')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(json.loads(response.content)['error'], 'Campaign not found')
        self.task.delay.assert_not_called()

    def test_execute_already_executed(self):
        response = self.post('done')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(json.loads(response.content)['error'], 'Campaign already executed')
        self.task.delay.assert_not_called()

    def test_execute_requires_post(self):
        request = self.factory.get('/promotions/campaigns/camp1/execute/')
        request.user = self.admin()
        self.assertEqual(views.execute_campaign(request, 'camp1').status_code, 405)

    def test_execute_requires_admin(self):
        user = mock.Mock(is_authenticated=True, is_superuser=False, is_school_admin=False)
        response = self.post('camp1', user=user)
        self.assertEqual(response.status_code, 302)
        self.task.delay.assert_not_called()

    def test_execution_status(self):
        request = self.factory.get('/promotions/executions/exec1/')
        request.user = self.admin()
        response = views.execution_status(request, 'exec1')

        self.assertEqual(response.status_code, 200)
        execution = json.loads(response.content)['execution']
        self.assertEqual(execution['id'], 'exec1')
        self.assertEqual(execution['processed_students'], 10)

    def test_execution_status_not_found(self):
        request = self.factory.get('/promotions/executions/nope/')
        request.user = self.admin()
        self.assertEqual(views.execution_status(request, 'nope').status_code, 404)
