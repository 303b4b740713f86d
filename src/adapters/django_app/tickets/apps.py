"""
Django app configuration for tickets.
"""

from django.apps import AppConfig


class TicketsConfig(AppConfig):
    """Tickets app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'src.adapters.django_app.tickets'
    label = 'tickets'
    verbose_name = 'Field Service Tickets'
