"""
Celery configuration for the escrow marketplace service.

Celery drives every asynchronous edge of the escrow and dispute workflows:
- Webhook processing (payments.tasks.process_webhook_event)
- Durable evidence deadlines (disputes.tasks.advance_dispute_after_deadline,
  scheduled with an ETA and backed by a periodic scan)
- Bounded automated review and settlement retries

Redis is both the message broker and result backend. Periodic tasks are
stored in the database by django-celery-beat (see the data migrations in
payments/ and disputes/).

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Looks for a tasks.py module in each installed app
app.autodiscover_tasks()
