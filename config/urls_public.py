from django.contrib import admin
from django.urls import path
from django.http import JsonResponse
from schools.views import public_home


def health_check(request):
    """Health check endpoint for load balancers and monitoring."""
    return JsonResponse({'status': 'healthy'})


urlpatterns = [
    path('admin/', admin.site.urls),
    path('health/', health_check, name='health_check'),
    path('', public_home, name='public_home'),
]
