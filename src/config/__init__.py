"""
Project configuration.

Modules:
- settings: Django settings
- urls: Root routes
- celery: Celery app (event handlers, escalation sweep)
- container: Dependency Injection container
"""

# Load the Celery app together with Django so shared tasks bind to it
from .celery import app as celery_app

__all__ = ('celery_app',)
