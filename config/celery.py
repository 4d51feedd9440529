"""Celery application bootstrap for this Django project.

Celery runs the queue side of the flow engine:
webhook → queue items → processor → flow engine → child queue items.

Run a worker and the beat scheduler with something like:
- celery -A config worker -l info
- celery -A config beat -l info

Broker/result backend and the beat schedule are configured via Django settings
(see config/settings.py).
"""

from __future__ import annotations

import os

from celery import Celery

from config.env import load_env

load_env()

# Workers import Django settings before any task module.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("flow-queues")

# CELERY_BROKER_URL, CELERY_BEAT_SCHEDULE, etc.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up apps.queues.tasks.
app.autodiscover_tasks()
