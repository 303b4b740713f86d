#!/usr/bin/env python
"""
Quick setup for local development.

This script:
1. Configures Django settings
2. Creates the SQLite database
3. Runs the migrations
4. Seeds sample tickets (optional)

Usage:
    python scripts/quick_setup.py
    python scripts/quick_setup.py --with-sample-data
"""

import os
import sys
import argparse

# Project root on the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def setup_django():
    """Configures Django for standalone use."""
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'src.config.settings')

    # SQLite for quick local runs
    os.environ['DATABASE_URL'] = 'sqlite:///db.sqlite3'

    import django
    django.setup()


def run_migrations():
    from django.core.management import call_command

    print("📦 Running migrations...")
    call_command('migrate', verbosity=1)
    print("✅ Migrations done!")


SAMPLE_TICKETS = [
    {
        'customer_name': 'Maria Souza',
        'customer_phone': '+905551112233',
        'customer_address': 'Bagdat Cd. 10, Kadikoy, Istanbul',
        'device_type': 'fridge',
        'priority': 'urgent',
        'problem_description': 'Fridge stopped cooling overnight, food at risk.',
    },
    {
        'customer_name': 'Ali Veli',
        'customer_phone': '+905550000000',
        'customer_address': 'Moda Cd. 5, Kadikoy, Istanbul',
        'device_type': 'washer',
        'priority': 'high',
        'problem_description': 'Drum does not spin, error E21 on the display.',
    },
    {
        'customer_name': 'Zeynep Kaya',
        'customer_phone': '+905554443322',
        'customer_address': 'Halaskargazi Cd. 120, Sisli, Istanbul',
        'device_type': 'dishwasher',
        'priority': 'normal',
        'problem_description': 'Water stays at the bottom after the cycle.',
    },
    {
        'customer_name': 'Mehmet Demir',
        'customer_phone': '+905553332211',
        'customer_address': 'Ataturk Blv. 45, Cankaya, Ankara',
        'device_type': 'oven',
        'priority': 'low',
        'problem_description': 'Oven light does not turn on.',
    },
]


def create_sample_data():
    """Seeds sample tickets and assigns the first two."""
    from src.config.container import get_container
    from src.core.tickets.dtos import RequestTransitionInputDTO
    from src.core.tickets.entities import DeviceType, TicketEntity, TicketPriority

    container = get_container()
    repo = container.ticket_repository()
    transition = container.services.request_transition_service()

    print("📝 Creating sample tickets...")

    created = []
    for data in SAMPLE_TICKETS:
        ticket = repo.add(TicketEntity.create(
            customer_name=data['customer_name'],
            customer_phone=data['customer_phone'],
            customer_address=data['customer_address'],
            device_type=DeviceType.from_string(data['device_type']),
            priority=TicketPriority.from_string(data['priority']),
            problem_description=data['problem_description'],
        ))
        created.append(ticket)
        print(f"   ✓ {ticket.ticket_number} {ticket.device_type.value} ({ticket.customer_name})")

    for ticket, technician_id in zip(created[:2], ('tech-001', 'tech-002')):
        transition.execute(RequestTransitionInputDTO(
            ticket_id=ticket.id,
            actor_id='dispatcher-001',
            actor_role='dispatcher',
            to_status='assigned',
            payload={'technician_id': technician_id},
        ))

    print(f"✅ {len(created)} tickets created!")


def check_connection():
    """Checks the database connection."""
    from django.db import connection
    from django.db.utils import DatabaseError

    print("🔍 Checking database connection...")

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        print("✅ Connection OK!")
        return True
    except DatabaseError as e:
        print(f"❌ Connection error: {e}")
        return False


def show_info():
    from django.conf import settings

    print("\n" + "=" * 60)
    print("📊 Setup Info")
    print("=" * 60)
    print(f"  Database Engine: {settings.DATABASES['default']['ENGINE']}")
    print(f"  Database Name: {settings.DATABASES['default']['NAME']}")
    print(f"  Event publisher: {settings.EVENT_PUBLISHER_MODE}")
    print(f"  Debug Mode: {settings.DEBUG}")
    print("=" * 60)
    print("\n🚀 Next steps:")
    print("   1. django-admin runserver --settings=src.config.settings")
    print("   2. Open: http://localhost:8000/admin/")
    print("   3. Open: http://localhost:8000/tickets/api/<ticket_id>/")
    print("\n")


def main():
    parser = argparse.ArgumentParser(description='Quick setup for local development')
    parser.add_argument(
        '--with-sample-data',
        action='store_true',
        help='Seed sample tickets'
    )
    parser.add_argument(
        '--check-only',
        action='store_true',
        help='Only check the database connection'
    )

    args = parser.parse_args()

    print("\n" + "=" * 60)
    print("🔧 Field Service Tickets - Quick Setup")
    print("=" * 60 + "\n")

    setup_django()

    if args.check_only:
        check_connection()
        return

    if not check_connection():
        print("\n⚠️  Make sure the database is running.")
        print("   To use SQLite, set: DATABASE_URL=sqlite:///db.sqlite3")
        return

    run_migrations()

    if args.with_sample_data:
        create_sample_data()

    show_info()


if __name__ == '__main__':
    main()
