import uuid

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class Document(models.Model):
    """
    A schemaless record in a named collection.

    Backs the record store used by the grading and promotion engine. Lives in
    the tenant schema, so every school gets its own set of collections.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    collection = models.CharField(
        max_length=100,
        db_index=True,
        help_text='e.g., students, promotion_records'
    )
    data = models.JSONField(default=dict, encoder=DjangoJSONEncoder)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'core_document'
        ordering = ['created_at']
        verbose_name = 'Document'
        verbose_name_plural = 'Documents'
        indexes = [
            models.Index(fields=['collection', 'created_at'], name='core_doc_collection_idx'),
        ]

    def __str__(self):
        return f"{self.collection}/{self.pk}"
