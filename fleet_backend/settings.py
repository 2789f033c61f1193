from pathlib import Path
import os
from dotenv import load_dotenv
from django.core.exceptions import ImproperlyConfigured

# -----------------------------------------------------
# Helpers
# -----------------------------------------------------
def env(name: str, default=None, *, required: bool = False):
    val = os.getenv(name, default)
    if required and (val is None or (isinstance(val, str) and val.strip() == "")):
        raise ImproperlyConfigured(f"Missing required environment variable: {name}")
    return val

def env_bool(name: str, default: bool = False) -> bool:
    return str(os.getenv(name, str(default))).lower() in {"1", "true", "yes", "on"}

def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ImproperlyConfigured(f"Environment variable {name} must be an integer, got {raw!r}")

# -----------------------------------------------------
# Paths & basics
# -----------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

DEBUG = env_bool("DEBUG", False)

# In production (DEBUG=False) you must set a strong secret in .env
SECRET_KEY = env("DJANGO_SECRET_KEY", "dev-only-secret-key-change-me", required=not DEBUG)

# Keep hosts explicit by default
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost").split(",") if h.strip()]

# -----------------------------------------------------
# Applications
# -----------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",

    # Third-party
    "rest_framework",

    # Local
    "clipjobs",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "fleet_backend.urls"

WSGI_APPLICATION = "fleet_backend.wsgi.application"

# -----------------------------------------------------
# Database (Postgres if DB_* env vars set, else SQLite)
# -----------------------------------------------------
if os.getenv("DB_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": env("DB_NAME", "fleet_backend"),
            "USER": env("DB_USER", "fleet_user"),
            "PASSWORD": env("DB_PASSWORD", ""),
            "HOST": env("DB_HOST", "127.0.0.1"),
            "PORT": env("DB_PORT", "5432"),
            "CONN_MAX_AGE": env_int("DB_CONN_MAX_AGE", 60),  # keep-alive
            "OPTIONS": {
                **({"sslmode": os.getenv("DB_SSLMODE")} if os.getenv("DB_SSLMODE") else {})
            },
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

# -----------------------------------------------------
# Internationalization
# -----------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# -----------------------------------------------------
# Django REST Framework
# -----------------------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
    ],
    "UNAUTHENTICATED_USER": None,
}

# -----------------------------------------------------
# Redis (broker, join guard cache, event channels)
# -----------------------------------------------------
REDIS_URL = env("REDIS_URL", "redis://127.0.0.1:6379/0")

# The join guard relies on cache.add() being atomic across workers, so
# multi-instance deployments must use the Redis cache.
if env_bool("USE_REDIS_CACHE", not DEBUG):
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": env("CACHE_URL", REDIS_URL),
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        }
    }

# -----------------------------------------------------
# Celery / Redis
# -----------------------------------------------------
CELERY_BROKER_URL = env("CELERY_BROKER_URL", REDIS_URL)
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", REDIS_URL)
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_ACKS_LATE = True
# No time limit: the start task may wait on uploads until the stall sweep flags it.
CELERY_TASK_TIME_LIMIT = None
# Start tasks block on uploads, so they get their own queue and worker
# (celery -A fleet_backend worker -Q clip-uploads). Sweeps and updates stay
# on the default queue and keep running while every start task waits.
CLIP_JOBS_START_QUEUE = env("CLIP_JOBS_START_QUEUE", "clip-uploads")
CELERY_TASK_ROUTES = {
    "clipjobs.tasks.start_clip_job": {"queue": CLIP_JOBS_START_QUEUE},
}

# -----------------------------------------------------
# Logging
# -----------------------------------------------------
LOG_LEVEL = env("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s %(name)s | %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "botocore": {"level": "WARNING"},
        "urllib3": {"level": "WARNING"},
    },
}

# -----------------------------------------------------
# Default PK type
# -----------------------------------------------------
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------------------
# AWS: S3 + MediaConvert (env-driven; no hardcoded secrets)
# -----------------------------------------------------
AWS_REGION = os.getenv("AWS_REGION", "us-east-2")
AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL") or None
# Account-specific endpoint; boto3 discovers it when unset.
MEDIACONVERT_ENDPOINT_URL = os.getenv("MEDIACONVERT_ENDPOINT_URL") or None
MEDIACONVERT_ROLE_ARN = os.getenv("MEDIACONVERT_ROLE_ARN", "")
MEDIACONVERT_ACCELERATION = env_bool("MEDIACONVERT_ACCELERATION", True)

# -----------------------------------------------------
# Clip jobs
# -----------------------------------------------------
CLIP_EVENTS_CHANNEL = os.getenv("CLIP_EVENTS_CHANNEL", "clips:events")
CLIP_JOB_EVENTS_CHANNEL = os.getenv("CLIP_JOB_EVENTS_CHANNEL", "clip-jobs:events")

CLIP_JOBS_TRANSCODER_POLL_SECONDS = env_int("CLIP_JOBS_TRANSCODER_POLL_SECONDS", 5)
CLIP_JOBS_UPLOAD_POLL_SECONDS = env_int("CLIP_JOBS_UPLOAD_POLL_SECONDS", 10)
CLIP_JOBS_STALL_SWEEP_SECONDS = env_int("CLIP_JOBS_STALL_SWEEP_SECONDS", 10)
CLIP_JOBS_UPLOAD_STALL_SECONDS = env_int("CLIP_JOBS_UPLOAD_STALL_SECONDS", 60)
CLIP_JOBS_STALL_SECONDS = env_int("CLIP_JOBS_STALL_SECONDS", 5 * 60)
CLIP_JOBS_JOIN_GUARD_SECONDS = env_int("CLIP_JOBS_JOIN_GUARD_SECONDS", 5 * 60)
CLIP_JOBS_GATEWAY_TIMEOUT_SECONDS = env_int("CLIP_JOBS_GATEWAY_TIMEOUT_SECONDS", 30)
# How often a waiting start task re-checks whether its job has turned terminal.
CLIP_JOBS_EVENT_POLL_SECONDS = env_int("CLIP_JOBS_EVENT_POLL_SECONDS", 5)
