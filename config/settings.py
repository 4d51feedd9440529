"""
Django settings for the flow queue service.

Values come from the process environment (optionally seeded from .env files,
see config/env.py). Defaults are suitable for local development and tests.
"""

from datetime import timedelta
from pathlib import Path

from config.env import env_bool, env_int, env_list, env_str, load_env

BASE_DIR = Path(__file__).resolve().parent.parent

load_env(BASE_DIR)

SECRET_KEY = env_str("DJANGO_SECRET_KEY", "dev-insecure-secret-key-change-me")
DEBUG = env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS = env_list("DJANGO_ALLOWED_HOSTS", ["localhost", "127.0.0.1", "testserver"])

INSTALLED_APPS = [
    "config.apps.FlowsAdminConfig",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django_json_widget",
    "django_object_actions",
    "apps.integrations",
    "apps.webhooks",
    "apps.flows",
    "apps.queues",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

# Database
# SQLite by default; set DB_ENGINE=django.db.backends.postgresql in production.
DATABASES = {
    "default": {
        "ENGINE": env_str("DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": env_str("DB_NAME", str(BASE_DIR / "db.sqlite3")),
        "USER": env_str("DB_USER"),
        "PASSWORD": env_str("DB_PASSWORD"),
        "HOST": env_str("DB_HOST"),
        "PORT": env_str("DB_PORT"),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# --- Webhooks ---
# Header carrying the per-webhook bearer token.
WEBHOOK_TOKEN_HEADER = env_str("WEBHOOK_TOKEN_HEADER", "X-Webhook-Token")

# --- Flow engine / queue processor ---
FLOWS_DEFAULT_QUEUE = env_str("FLOWS_DEFAULT_QUEUE", "default")
FLOWS_DEFAULT_BATCH_SIZE = env_int("FLOWS_DEFAULT_BATCH_SIZE", 10)
FLOWS_LEASE_SECONDS = env_int("FLOWS_LEASE_SECONDS", 300)
FLOWS_ITEM_TIMEOUT_SECONDS = env_int("FLOWS_ITEM_TIMEOUT_SECONDS", 120)
FLOWS_MAX_ATTEMPTS = env_int("FLOWS_MAX_ATTEMPTS", 3)
FLOWS_MAX_CASCADE_DEPTH = env_int("FLOWS_MAX_CASCADE_DEPTH", 10)
FLOWS_PROCESSOR_MAX_WORKERS = env_int("FLOWS_PROCESSOR_MAX_WORKERS", 1)

# --- Celery ---
CELERY_BROKER_URL = env_str("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = env_str("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER", False)
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULE = {
    "process-all-queues": {
        "task": "apps.queues.tasks.process_all_queues",
        "schedule": timedelta(seconds=env_int("FLOWS_PROCESS_INTERVAL_SECONDS", 60)),
    },
}

# --- Logging ---
LOG_LEVEL = env_str("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{asctime} {levelname} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": env_str("DJANGO_LOG_LEVEL", "WARNING").upper(),
            "propagate": False,
        },
        "apps": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}
