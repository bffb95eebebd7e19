import uuid
from types import SimpleNamespace
from unittest import mock

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase

from core.models import Document
from core.store import (
    DocumentStore, InMemoryRecordStore, PROMOTION_RECORDS, RecordNotFound, STUDENTS,
)


class InMemoryRecordStoreTests(SimpleTestCase):
    """Tests for the dictionary-backed record store."""

    def setUp(self):
        self.store = InMemoryRecordStore({
            STUDENTS: {
                's1': {'name': 'Ama Mensah', 'current_class_id': 'c1', 'is_active': True},
                's2': {'name': 'Kofi Boateng', 'current_class_id': 'c2', 'is_active': True},
            },
            PROMOTION_RECORDS: {
                'r1': {'student_id': 's1', 'status': 'submitted'},
                'r2': {'student_id': 's2', 'status': 'approved'},
                'r3': {'student_id': 's3', 'status': 'executed'},
            },
        })

    def test_get_includes_id(self):
        student = self.store.get(STUDENTS, 's1')
        self.assertEqual(student['id'], 's1')
        self.assertEqual(student['name'], 'Ama Mensah')

    def test_get_missing(self):
        self.assertIsNone(self.store.get(STUDENTS, 'nope'))
        self.assertIsNone(self.store.get('unknown_collection', 's1'))

    def test_query_exact_match(self):
        results = self.store.query(STUDENTS, current_class_id='c2')
        self.assertEqual([r['id'] for r in results], ['s2'])

    def test_query_in_filter(self):
        results = self.store.query(PROMOTION_RECORDS, status__in=['submitted', 'approved'])
        self.assertEqual(sorted(r['id'] for r in results), ['r1', 'r2'])

    def test_query_without_filters_returns_everything(self):
        self.assertEqual(len(self.store.query(PROMOTION_RECORDS)), 3)

    def test_update_merges_fields(self):
        self.store.update(STUDENTS, 's1', {'current_class_id': 'c2', 'id': 'ignored'})
        student = self.store.get(STUDENTS, 's1')
        self.assertEqual(student['current_class_id'], 'c2')
        self.assertEqual(student['name'], 'Ama Mensah')
        self.assertEqual(student['id'], 's1')

    def test_update_missing_raises(self):
        with self.assertRaises(RecordNotFound):
            self.store.update(STUDENTS, 'nope', {'name': 'X'})

    def test_add_returns_new_id(self):
        record_id = self.store.add(STUDENTS, {'name': 'Yaw Asante'})
        self.assertEqual(self.store.get(STUDENTS, record_id)['name'], 'Yaw Asante')

    def test_returned_records_are_copies(self):
        student = self.store.get(STUDENTS, 's1')
        student['name'] = 'Changed'
        history = {'promotion_history': [{'to_class': 'JHS 2'}]}
        self.store.update(STUDENTS, 's1', history)
        history['promotion_history'].append({'to_class': 'JHS 3'})

        stored = self.store.get(STUDENTS, 's1')
        self.assertEqual(stored['name'], 'Ama Mensah')
        self.assertEqual(len(stored['promotion_history']), 1)

    def test_now_is_monotonic(self):
        stamps = [self.store.now() for _ in range(5)]
        self.assertEqual(stamps, sorted(set(stamps)))


class DocumentStoreTests(SimpleTestCase):
    """Tests for the ORM-backed store, with the queryset mocked out."""

    def setUp(self):
        self.store = DocumentStore()
        patcher = mock.patch.object(DocumentStore, '_documents')
        self.documents = patcher.start()
        self.addCleanup(patcher.stop)

    def test_query_uses_json_lookups(self):
        pk = uuid.uuid4()
        self.documents.return_value.filter.return_value = [
            SimpleNamespace(pk=pk, data={'campaign_id': 'c1', 'status': 'approved'}),
        ]

        results = self.store.query(PROMOTION_RECORDS, campaign_id='c1', status__in=['submitted', 'approved'])

        self.documents.assert_called_once_with(PROMOTION_RECORDS)
        self.documents.return_value.filter.assert_called_once_with(
            data__campaign_id='c1',
            data__status__in=['submitted', 'approved'],
        )
        self.assertEqual(results, [{'campaign_id': 'c1', 'status': 'approved', 'id': str(pk)}])

    def test_get_returns_record(self):
        pk = uuid.uuid4()
        self.documents.return_value.filter.return_value.first.return_value = SimpleNamespace(
            pk=pk, data={'name': 'Ama Mensah'},
        )
        self.assertEqual(self.store.get(STUDENTS, str(pk)), {'name': 'Ama Mensah', 'id': str(pk)})

    def test_get_missing(self):
        self.documents.return_value.filter.return_value.first.return_value = None
        self.assertIsNone(self.store.get(STUDENTS, str(uuid.uuid4())))

    def test_get_invalid_id(self):
        """An id that is not a UUID cannot exist."""
        self.documents.return_value.filter.side_effect = ValidationError('not a uuid')
        self.assertIsNone(self.store.get(STUDENTS, 'abc'))


class DocumentModelTests(SimpleTestCase):
    """Tests for the Document model."""

    def test_str(self):
        pk = uuid.uuid4()
        document = Document(id=pk, collection=STUDENTS, data={})
        self.assertEqual(str(document), f'students/{pk}')

    def test_defaults(self):
        document = Document(collection=STUDENTS)
        self.assertIsInstance(document.id, uuid.UUID)
        self.assertEqual(document.data, {})
