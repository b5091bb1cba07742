"""
URL configuration for study_planner project.
"""

from django.urls import path, include
from django.http import JsonResponse
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView, SpectacularSwaggerView


def home_view(request):
    """Root endpoint with API information."""
    return JsonResponse({
        'message': 'Welcome to Study Planner API',
        'version': '1.0.0',
        'endpoints': {
            'API Root': '/api/',
            'Schedule Tasks': 'POST /api/schedule/',
            'Calendar Events': 'POST /api/schedule/calendar/',
            'Complete Session': 'POST /api/schedule/complete/',
            'API Documentation': '/api/docs/',
            'OpenAPI Schema': '/api/schema/',
        }
    })


urlpatterns = [
    path('', home_view, name='home'),
    path('api/', include('planner.urls')),
    # OpenAPI/Swagger Documentation
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('api/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),
]
