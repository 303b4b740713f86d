"""
Initial migration of the ticket domain.

Creates the tables:
- tickets: tickets with the optimistic lock version
- ticket_status_history: append-only transition log
- escalations: escalations, one open per ticket and type
- ticket_attachments: evidence metadata
- ticket_otp_codes: hashed completion OTP codes
- domain_events: event journal
"""

from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


TICKET_STATUS_CHOICES = [
    ('new', 'New'),
    ('assigned', 'Assigned'),
    ('scheduled', 'Scheduled'),
    ('on_route', 'On Route'),
    ('arrived', 'Arrived'),
    ('inspecting', 'Inspecting'),
    ('diagnosed', 'Diagnosed'),
    ('repairing', 'Repairing'),
    ('waiting_parts', 'Waiting Parts'),
    ('pickup_device', 'Pickup Device'),
    ('in_workshop', 'In Workshop'),
    ('ready_delivery', 'Ready Delivery'),
    ('completed', 'Completed'),
    ('not_fixed', 'Not Fixed'),
    ('cancelled', 'Cancelled'),
]

ACTOR_ROLE_CHOICES = [
    ('customer', 'Customer'),
    ('dispatcher', 'Dispatcher'),
    ('technician', 'Technician'),
    ('workshop', 'Workshop'),
    ('admin', 'Admin'),
]

ESCALATION_TYPE_CHOICES = [
    ('assignment_delay', 'Assignment Delay'),
    ('sla_breach', 'Sla Breach'),
    ('repeat_failure', 'Repeat Failure'),
    ('stuck_state', 'Stuck State'),
]

ESCALATION_LEVEL_CHOICES = [
    ('l1', 'L1'),
    ('l2', 'L2'),
    ('l3', 'L3'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        # =================================================================
        # Table: tickets
        # =================================================================
        migrations.CreateModel(
            name='TicketModel',
            fields=[
                ('id', models.CharField(
                    max_length=36,
                    primary_key=True,
                    serialize=False,
                    editable=False,
                    help_text='Ticket UUID'
                )),
                ('ticket_number', models.CharField(max_length=32, unique=True)),
                ('status', models.CharField(
                    max_length=20,
                    choices=TICKET_STATUS_CHOICES,
                    default='new',
                    db_index=True,
                )),
                ('priority', models.CharField(
                    max_length=10,
                    choices=[
                        ('low', 'Low'),
                        ('normal', 'Normal'),
                        ('high', 'High'),
                        ('urgent', 'Urgent'),
                    ],
                    default='normal',
                    db_index=True,
                )),
                ('device_type', models.CharField(
                    max_length=20,
                    choices=[
                        ('ac', 'Ac'),
                        ('washer', 'Washer'),
                        ('fridge', 'Fridge'),
                        ('oven', 'Oven'),
                        ('dishwasher', 'Dishwasher'),
                        ('other', 'Other'),
                    ],
                    default='other',
                )),
                ('problem_description', models.TextField(blank=True, default='')),
                ('customer_name', models.CharField(max_length=200)),
                ('customer_phone', models.CharField(max_length=32, db_index=True)),
                ('customer_address', models.TextField(blank=True, default='')),
                ('customer_latitude', models.FloatField(null=True, blank=True)),
                ('customer_longitude', models.FloatField(null=True, blank=True)),
                ('technician_id', models.CharField(max_length=100, null=True, blank=True, db_index=True)),
                ('scheduled_date', models.DateField(null=True, blank=True)),
                ('scheduled_slot', models.CharField(
                    max_length=10,
                    choices=[
                        ('morning', 'Morning'),
                        ('noon', 'Noon'),
                        ('evening', 'Evening'),
                    ],
                    null=True,
                    blank=True,
                )),
                ('diagnosis_notes', models.TextField(null=True, blank=True)),
                ('repair_notes', models.TextField(null=True, blank=True)),
                ('internal_notes', models.TextField(null=True, blank=True)),
                ('not_fixed_reasons', models.JSONField(default=list, blank=True)),
                ('pickup_reason', models.TextField(null=True, blank=True)),
                ('cancellation_reason', models.TextField(null=True, blank=True)),
                ('confirmation_type', models.CharField(
                    max_length=10,
                    choices=[
                        ('signature', 'Signature'),
                        ('otp', 'Otp'),
                    ],
                    null=True,
                    blank=True,
                )),
                ('warranty_status', models.CharField(
                    max_length=20,
                    choices=[
                        ('unknown', 'Unknown'),
                        ('in_warranty', 'In Warranty'),
                        ('out_of_warranty', 'Out Of Warranty'),
                    ],
                    default='unknown',
                )),
                ('warranty_expires_at', models.DateField(null=True, blank=True)),
                ('scheduled_set_at', models.DateTimeField(null=True, blank=True)),
                ('trip_started_at', models.DateTimeField(null=True, blank=True)),
                ('arrived_at', models.DateTimeField(null=True, blank=True)),
                ('inspection_started_at', models.DateTimeField(null=True, blank=True)),
                ('diagnosed_at', models.DateTimeField(null=True, blank=True)),
                ('repair_started_at', models.DateTimeField(null=True, blank=True)),
                ('completed_at', models.DateTimeField(null=True, blank=True)),
                ('closed_at', models.DateTimeField(null=True, blank=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, db_index=True)),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('version', models.PositiveIntegerField(default=0)),
            ],
            options={
                'verbose_name': 'Ticket',
                'verbose_name_plural': 'Tickets',
                'db_table': 'tickets',
                'ordering': ['-created_at'],
            },
        ),

        migrations.AddIndex(
            model_name='ticketmodel',
            index=models.Index(fields=['status', 'created_at'], name='tickets_status_2f1b7c_idx'),
        ),
        migrations.AddIndex(
            model_name='ticketmodel',
            index=models.Index(fields=['technician_id', 'status'], name='tickets_technic_8a41d2_idx'),
        ),
        migrations.AddIndex(
            model_name='ticketmodel',
            index=models.Index(fields=['scheduled_date', 'scheduled_slot'], name='tickets_schedul_5c93e0_idx'),
        ),

        # =================================================================
        # Table: ticket_status_history
        # =================================================================
        migrations.CreateModel(
            name='TicketStatusHistoryModel',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('entry_id', models.CharField(max_length=36, unique=True, editable=False)),
                ('from_status', models.CharField(
                    max_length=20,
                    choices=TICKET_STATUS_CHOICES,
                    null=True,
                    blank=True,
                )),
                ('to_status', models.CharField(max_length=20, choices=TICKET_STATUS_CHOICES)),
                ('actor_id', models.CharField(max_length=100)),
                ('actor_role', models.CharField(max_length=20, choices=ACTOR_ROLE_CHOICES)),
                ('timestamp', models.DateTimeField(db_index=True)),
                ('notes', models.TextField(null=True, blank=True)),
                ('latitude', models.FloatField(null=True, blank=True)),
                ('longitude', models.FloatField(null=True, blank=True)),
                ('is_override', models.BooleanField(default=False)),
                ('ticket', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='status_history',
                    to='tickets.ticketmodel',
                )),
            ],
            options={
                'verbose_name': 'Status History Entry',
                'verbose_name_plural': 'Status History',
                'db_table': 'ticket_status_history',
                'ordering': ['timestamp', 'id'],
            },
        ),

        migrations.AddIndex(
            model_name='ticketstatushistorymodel',
            index=models.Index(fields=['ticket', 'timestamp'], name='ticket_stat_ticket__3e6f0a_idx'),
        ),

        # =================================================================
        # Table: escalations
        # =================================================================
        migrations.CreateModel(
            name='EscalationModel',
            fields=[
                ('id', models.CharField(max_length=36, primary_key=True, serialize=False, editable=False)),
                ('type', models.CharField(max_length=20, choices=ESCALATION_TYPE_CHOICES)),
                ('level', models.CharField(max_length=2, choices=ESCALATION_LEVEL_CHOICES, db_index=True)),
                ('reason', models.TextField()),
                ('created_at', models.DateTimeField(db_index=True)),
                ('resolved', models.BooleanField(default=False, db_index=True)),
                ('resolved_at', models.DateTimeField(null=True, blank=True)),
                ('ticket', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='escalations',
                    to='tickets.ticketmodel',
                )),
            ],
            options={
                'verbose_name': 'Escalation',
                'verbose_name_plural': 'Escalations',
                'db_table': 'escalations',
                'ordering': ['created_at'],
            },
        ),

        migrations.AddConstraint(
            model_name='escalationmodel',
            constraint=models.UniqueConstraint(
                fields=('ticket', 'type'),
                condition=models.Q(resolved=False),
                name='unique_open_escalation_per_type',
            ),
        ),

        # =================================================================
        # Table: ticket_attachments
        # =================================================================
        migrations.CreateModel(
            name='AttachmentModel',
            fields=[
                ('id', models.CharField(max_length=36, primary_key=True, serialize=False, editable=False)),
                ('type', models.CharField(
                    max_length=20,
                    choices=[
                        ('before_inspection', 'Before Inspection'),
                        ('after_repair', 'After Repair'),
                        ('serial_photo', 'Serial Photo'),
                        ('invoice_photo', 'Invoice Photo'),
                        ('parts_photo', 'Parts Photo'),
                        ('device_photo', 'Device Photo'),
                        ('signature', 'Signature'),
                        ('other', 'Other'),
                    ],
                    db_index=True,
                )),
                ('file_url', models.CharField(max_length=500)),
                ('uploaded_by', models.CharField(max_length=100, null=True, blank=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('ticket', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='attachments',
                    to='tickets.ticketmodel',
                )),
            ],
            options={
                'verbose_name': 'Attachment',
                'verbose_name_plural': 'Attachments',
                'db_table': 'ticket_attachments',
                'ordering': ['created_at'],
            },
        ),

        # =================================================================
        # Table: ticket_otp_codes
        # =================================================================
        migrations.CreateModel(
            name='OtpCodeModel',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('code_hash', models.CharField(max_length=64)),
                ('expires_at', models.DateTimeField()),
                ('used_at', models.DateTimeField(null=True, blank=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('ticket', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='otp_codes',
                    to='tickets.ticketmodel',
                )),
            ],
            options={
                'verbose_name': 'OTP Code',
                'verbose_name_plural': 'OTP Codes',
                'db_table': 'ticket_otp_codes',
                'ordering': ['-created_at'],
            },
        ),

        migrations.AddIndex(
            model_name='otpcodemodel',
            index=models.Index(fields=['ticket', 'created_at'], name='ticket_otp__ticket__9d0c4b_idx'),
        ),

        # =================================================================
        # Table: domain_events (event journal)
        # =================================================================
        migrations.CreateModel(
            name='DomainEventModel',
            fields=[
                ('event_id', models.CharField(
                    max_length=36,
                    primary_key=True,
                    serialize=False,
                    help_text='Event UUID'
                )),
                ('event_type', models.CharField(
                    max_length=100,
                    db_index=True,
                    help_text='Event type (e.g. TicketStatusChangedEvent)'
                )),
                ('aggregate_type', models.CharField(max_length=100, db_index=True)),
                ('aggregate_id', models.CharField(max_length=36, db_index=True)),
                ('event_data', models.JSONField(default=dict)),
                ('version', models.IntegerField(default=1, help_text='Event schema version')),
                ('sequence', models.BigIntegerField(
                    default=0,
                    help_text='Position of the event within its aggregate'
                )),
                ('occurred_at', models.DateTimeField()),
                ('recorded_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Domain Event',
                'verbose_name_plural': 'Domain Events',
                'db_table': 'domain_events',
                'ordering': ['recorded_at'],
            },
        ),

        migrations.AddIndex(
            model_name='domaineventmodel',
            index=models.Index(fields=['aggregate_id', 'sequence'], name='domain_even_aggrega_7b2e51_idx'),
        ),
        migrations.AddIndex(
            model_name='domaineventmodel',
            index=models.Index(fields=['event_type', 'recorded_at'], name='domain_even_event_t_c4a8f3_idx'),
        ),
    ]
