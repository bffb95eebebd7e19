# schools/views.py
from django.http import JsonResponse

from .models import School


def public_home(request):
    """Landing endpoint on the public schema: lists the schools being served."""
    schools = School.objects.exclude(schema_name='public').order_by('name')
    return JsonResponse({
        'service': 'gradebook',
        'schools': [{'name': s.display_name, 'schema': s.schema_name} for s in schools],
    })
