"""
URL patterns of the ticket domain.

JSON API:
- GET /tickets/api/escalations/ - Open escalations
- POST /tickets/api/escalations/sweep/ - Run an escalation sweep
- GET /tickets/api/<id>/ - Ticket detail
- POST /tickets/api/<id>/transitions/ - Request a transition
- GET /tickets/api/<id>/history/ - History
- GET /tickets/api/<id>/allowed-transitions/ - Next allowed actions
- POST /tickets/api/<id>/override/ - Administrative override
- POST /tickets/api/<id>/completion-otp/ - Issue a completion OTP
"""

from django.urls import path
from . import api_views

app_name = 'tickets'

urlpatterns = [
    # Escalations (before <pk> so they do not collide)
    path('api/escalations/', api_views.EscalationAPIListView.as_view(), name='api_escalations'),
    path('api/escalations/sweep/', api_views.EscalationAPISweepView.as_view(), name='api_escalation_sweep'),

    # Ticket
    path('api/<str:pk>/', api_views.TicketAPIDetailView.as_view(), name='api_detail'),
    path('api/<str:pk>/transitions/', api_views.TicketAPITransitionView.as_view(), name='api_transitions'),
    path('api/<str:pk>/history/', api_views.TicketAPIHistoryView.as_view(), name='api_history'),
    path(
        'api/<str:pk>/allowed-transitions/',
        api_views.TicketAPIAllowedTransitionsView.as_view(),
        name='api_allowed_transitions',
    ),
    path('api/<str:pk>/override/', api_views.TicketAPIOverrideView.as_view(), name='api_override'),
    path('api/<str:pk>/completion-otp/', api_views.TicketAPICompletionOtpView.as_view(), name='api_completion_otp'),
]
