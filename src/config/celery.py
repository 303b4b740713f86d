"""
Celery configuration for asynchronous processing.

Celery is used for:
- Domain event handlers (customer and staff notifications)
- The periodic escalation sweep
- Housekeeping (resolved escalations, old journal entries)

Architecture:
- Broker: RabbitMQ (messages between Django and workers)
- Backend: Redis, optional (task results)
- Workers: processes running the tasks

Usage:
    # Start a worker
    celery -A src.config.celery worker -l INFO -Q default,events,notifications,escalations

    # Start beat (scheduled tasks)
    celery -A src.config.celery beat -l INFO
"""

import os
from celery import Celery
from celery.schedules import crontab
from kombu import Queue, Exchange

# Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'src.config.settings')

# Celery application
app = Celery('fieldservice')

# Settings prefixed with CELERY_ in Django settings
app.config_from_object('django.conf:settings', namespace='CELERY')

app.conf.update(
    # Monitoring
    worker_send_task_events=True,
    task_send_sent_event=True,
)

HANDLERS = 'src.adapters.django_app.events.handlers'

# Queues
app.conf.task_default_queue = 'default'
app.conf.task_queues = (
    Queue('default', Exchange('default'), routing_key='default'),
    Queue('events', Exchange('events'), routing_key='events.#'),
    Queue('notifications', Exchange('notifications'), routing_key='notifications.#'),
    Queue('escalations', Exchange('escalations'), routing_key='escalations.#'),
)

# Task routing
app.conf.task_routes = {
    f'{HANDLERS}.dispatch_domain_event': {'queue': 'events'},
    f'{HANDLERS}.handle_*': {'queue': 'notifications'},
    f'{HANDLERS}.run_escalation_sweep': {'queue': 'escalations'},
    f'{HANDLERS}.cleanup_*': {'queue': 'default'},
}

# Task discovery in the Django apps
app.autodiscover_tasks([
    'src.adapters.django_app.events',
], related_name='handlers')


# Scheduled tasks (beat)
app.conf.beat_schedule = {
    # Evaluate every active ticket against the escalation rules
    'run-escalation-sweep': {
        'task': f'{HANDLERS}.run_escalation_sweep',
        'schedule': float(os.getenv('ESCALATION_SWEEP_INTERVAL_SECONDS', 300)),
    },

    # Drop escalations resolved more than 30 days ago, Sundays 03:00
    'cleanup-resolved-escalations': {
        'task': f'{HANDLERS}.cleanup_resolved_escalations',
        'schedule': crontab(hour=3, minute=0, day_of_week=0),
        'kwargs': {'days': 30},
    },

    # Drop journal entries older than 90 days, Sundays 03:30
    'cleanup-old-events': {
        'task': f'{HANDLERS}.cleanup_old_events',
        'schedule': crontab(hour=3, minute=30, day_of_week=0),
        'kwargs': {'days': 90},
    },
}
