"""
URL Configuration.

Structure:
- /admin/ - Django Admin
- /tickets/api/ - Ticket JSON API
- /health/ - Health check
"""

from django.contrib import admin
from django.http import JsonResponse
from django.urls import path, include

from src.adapters.django_app.shared.database import check_database_connection


def health(request):
    database = check_database_connection()
    status = 200 if database['healthy'] else 503
    return JsonResponse(
        {'status': 'ok' if database['healthy'] else 'degraded', 'database': database},
        status=status,
    )


urlpatterns = [
    # Django Admin
    path('admin/', admin.site.urls),

    # Tickets App
    path('tickets/', include('src.adapters.django_app.tickets.urls')),

    # Health check
    path('health/', health, name='health'),
]
