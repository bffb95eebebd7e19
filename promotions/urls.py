from django.urls import path
from . import views

app_name = 'promotions'

urlpatterns = [
    path('campaigns/<str:campaign_id>/execute/', views.execute_campaign, name='execute_campaign'),
    path('executions/<str:execution_id>/', views.execution_status, name='execution_status'),
]
