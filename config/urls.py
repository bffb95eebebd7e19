from django.urls import path, include


urlpatterns = [
    path('promotions/', include('promotions.urls')),
]
