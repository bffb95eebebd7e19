"""
Record store used by the grading and promotion engine.

Records are plain dictionaries addressed by collection name and id. The
engine only talks to ``BaseRecordStore``; ``DocumentStore`` keeps records in
the tenant's database and ``InMemoryRecordStore`` keeps them in a dict for
tests and one-off scripts.
"""
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

logger = logging.getLogger(__name__)

# Collection names
STUDENTS = 'students'
TERMS = 'terms'
SUBJECT_SCORES = 'subject_scores'
STUDENT_RESULTS = 'student_results'
PROMOTION_CAMPAIGNS = 'promotion_campaigns'
PROMOTION_RECORDS = 'promotion_records'
PROMOTION_EXECUTIONS = 'promotion_executions'


class RecordNotFound(Exception):
    """Raised when updating a record that does not exist."""

    def __init__(self, collection, record_id):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"{collection}/{record_id} not found")


def _matches(record, filters):
    """Check a record against ``field=value`` and ``field__in=[...]`` filters."""
    for key, expected in filters.items():
        if key.endswith('__in'):
            if record.get(key[:-len('__in')]) not in expected:
                return False
        elif record.get(key) != expected:
            return False
    return True


class BaseRecordStore(ABC):
    """
    Abstract base class for record stores.

    Returned records always include their ``id``; the ``id`` key is ignored
    when writing.
    """

    @abstractmethod
    def get(self, collection: str, record_id: str) -> Optional[Dict]:
        """
        Fetch one record.

        Returns:
            The record dict, or None if it does not exist
        """
        pass

    @abstractmethod
    def query(self, collection: str, **filters) -> List[Dict]:
        """
        Fetch every record matching the filters.

        Filters are ``field=value`` for equality and ``field__in=[...]`` for
        membership, e.g. ``query('promotion_records', campaign_id=cid,
        status__in=['submitted', 'approved'])``.
        """
        pass

    @abstractmethod
    def update(self, collection: str, record_id: str, fields: Dict) -> None:
        """
        Merge ``fields`` into an existing record.

        Raises:
            RecordNotFound: if the record does not exist
        """
        pass

    @abstractmethod
    def add(self, collection: str, fields: Dict) -> str:
        """Create a record and return its new id."""
        pass

    def now(self):
        """Server timestamp for ``*_at`` fields."""
        return timezone.now()


class InMemoryRecordStore(BaseRecordStore):
    """
    Dictionary-backed store.

    Records are copied on the way in and out, so callers can never modify
    stored state by holding on to a returned dict.
    """

    def __init__(self, initial=None):
        self._collections = defaultdict(dict)
        self._last_timestamp = None
        for collection, records in (initial or {}).items():
            for record_id, data in records.items():
                self._collections[collection][str(record_id)] = self._clean(data)

    @staticmethod
    def _clean(fields):
        data = copy.deepcopy(dict(fields))
        data.pop('id', None)
        return data

    def _to_record(self, record_id, data):
        record = copy.deepcopy(data)
        record['id'] = record_id
        return record

    def get(self, collection, record_id):
        data = self._collections[collection].get(str(record_id))
        if data is None:
            return None
        return self._to_record(str(record_id), data)

    def query(self, collection, **filters):
        return [
            self._to_record(record_id, data)
            for record_id, data in self._collections[collection].items()
            if _matches(data, filters)
        ]

    def update(self, collection, record_id, fields):
        data = self._collections[collection].get(str(record_id))
        if data is None:
            raise RecordNotFound(collection, record_id)
        data.update(self._clean(fields))

    def add(self, collection, fields):
        record_id = str(uuid.uuid4())
        self._collections[collection][record_id] = self._clean(fields)
        return record_id

    def now(self):
        # Never hand out the same or an earlier timestamp twice
        timestamp = timezone.now()
        if self._last_timestamp is not None and timestamp <= self._last_timestamp:
            timestamp = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = timestamp
        return timestamp


class DocumentStore(BaseRecordStore):
    """
    Store backed by the ``core.Document`` model.

    Must be used inside a tenant schema (request middleware or
    ``schema_context``). Filters become JSON key lookups on ``data``.
    """

    @staticmethod
    def _to_record(document):
        record = dict(document.data)
        record['id'] = str(document.pk)
        return record

    @staticmethod
    def _documents(collection):
        from .models import Document
        return Document.objects.filter(collection=collection)

    def get(self, collection, record_id):
        try:
            document = self._documents(collection).filter(pk=record_id).first()
        except ValidationError:
            # Not a valid UUID, so it cannot exist
            return None
        if document is None:
            return None
        return self._to_record(document)

    def query(self, collection, **filters):
        lookups = {f'data__{key}': value for key, value in filters.items()}
        return [self._to_record(d) for d in self._documents(collection).filter(**lookups)]

    def update(self, collection, record_id, fields):
        fields = {k: v for k, v in fields.items() if k != 'id'}
        with transaction.atomic():
            try:
                document = self._documents(collection).select_for_update().filter(pk=record_id).first()
            except ValidationError:
                document = None
            if document is None:
                raise RecordNotFound(collection, record_id)
            document.data = {**document.data, **fields}
            document.save(update_fields=['data', 'updated_at'])

    def add(self, collection, fields):
        from .models import Document
        data = {k: v for k, v in fields.items() if k != 'id'}
        document = Document.objects.create(collection=collection, data=data)
        logger.debug(f"Created {collection}/{document.pk}")
        return str(document.pk)
