"""
Django settings for config project.
Compatible Django 5.x

– Charge .env.local (prioritaire) puis .env
– Basculer DEV/PROD via DEBUG
– Opérateur SMS, intervalles de polling et fenêtres métier pilotés par l'environnement
"""

from pathlib import Path
import os
import dj_database_url

# ======================================================================
# BASE & ENV
# ======================================================================
BASE_DIR = Path(__file__).resolve().parent.parent

def _load_env():
    """Charge .env.local en priorité puis .env (si disponibles)."""
    from dotenv import load_dotenv
    for name in (".env.local", ".env"):
        p = BASE_DIR / name
        if p.exists():
            load_dotenv(p, override=True)
            break

_load_env()

def env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "on"}

def env_list(name: str, default: str = "") -> list[str]:
    raw = os.getenv(name, default)
    return [x.strip() for x in raw.split(",") if x.strip()]

def env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    return int(v) if v not in (None, "") else default

# ======================================================================
# CORE FLAGS
# ======================================================================
DEBUG = env_bool("DEBUG", True)

SECRET_KEY = (os.getenv("SECRET_KEY") or ("dev-secret" if DEBUG else ""))
if not DEBUG and not SECRET_KEY:
    raise RuntimeError("SECRET_KEY manquant en production.")

if DEBUG:
    ALLOWED_HOSTS = env_list("ALLOWED_HOSTS", "localhost,127.0.0.1,0.0.0.0,testserver")
    CSRF_TRUSTED_ORIGINS = env_list("CSRF_TRUSTED_ORIGINS", "http://localhost,http://127.0.0.1")
else:
    ALLOWED_HOSTS = env_list("ALLOWED_HOSTS")
    CSRF_TRUSTED_ORIGINS = env_list("CSRF_TRUSTED_ORIGINS")

# ======================================================================
# APPS
# ======================================================================
INSTALLED_APPS = [
    # Apps projet
    "core.apps.CoreConfig",
    "accounts.apps.AccountsConfig",
    "dashboard.apps.DashboardConfig",
    "rewards.apps.RewardsConfig",
    "sms.apps.SmsConfig",

    # Django
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
]

# ======================================================================
# MIDDLEWARE & TEMPLATES
# ======================================================================
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
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"
ASGI_APPLICATION = "config.asgi.application"

# ======================================================================
# DATABASE & CACHE
# ======================================================================
DATABASES = {
    "default": dj_database_url.parse(
        os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'dev.sqlite3'}"),
        conn_max_age=600,
        ssl_require=env_bool("DB_SSL_REQUIRE", False),
    )
}

# Dernières valeurs connues des badges
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "referral-engine",
    }
}

# ======================================================================
# AUTH / PASSWORDS
# ======================================================================
AUTH_USER_MODEL = "accounts.User"

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LOGIN_URL = "/admin/login/"

# ======================================================================
# I18N / TZ
# ======================================================================
LANGUAGE_CODE = "fr-fr"
TIME_ZONE = os.getenv("TIME_ZONE", "America/New_York")
USE_I18N = True
USE_TZ = True

# ======================================================================
# STATIC
# ======================================================================
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ======================================================================
# SMS (opérateur : twilio | smsmode | dry_run)
# ======================================================================
SMS_CARRIER = os.getenv("SMS_CARRIER", "dry_run")

TWILIO = {
    "ACCOUNT_SID": os.getenv("TWILIO_ACCOUNT_SID", ""),
    "AUTH_TOKEN": os.getenv("TWILIO_AUTH_TOKEN", ""),
    "FROM_NUMBER": os.getenv("TWILIO_FROM_NUMBER", ""),
    "STATUS_CALLBACK_URL": os.getenv("TWILIO_STATUS_CALLBACK_URL", ""),
    "VALIDATE_WEBHOOKS": env_bool("TWILIO_VALIDATE_WEBHOOKS", not DEBUG),
}

SMSMODE = {
    "API_KEY": os.getenv("SMSMODE_API_KEY", ""),
    "SENDER": os.getenv("SMSMODE_SENDER", ""),
    "BASE_URL": os.getenv("SMSMODE_BASE_URL", "https://rest.smsmode.com"),
    "DRY_RUN": env_bool("SMSMODE_DRY_RUN", False),
    "TIMEOUT": 10,
}
SMS_DEFAULT_REGION = os.getenv("SMS_DEFAULT_REGION", "US")
SMS_PREVIEW_LENGTH = 60
# SMS automatiques : remerciement post-réservation, avis de récompense à la conversion
SMS_AUTO_THANK_YOU = env_bool("SMS_AUTO_THANK_YOU", True)
SMS_CONVERSION_NOTIFICATIONS = env_bool("SMS_CONVERSION_NOTIFICATIONS", True)

# ======================================================================
# PARRAINAGES & POLLING
# ======================================================================
NEW_ITEMS_WINDOW_HOURS = env_int("NEW_ITEMS_WINDOW_HOURS", 24)
PENDING_REFERRAL_MAX_AGE_DAYS = env_int("PENDING_REFERRAL_MAX_AGE_DAYS", 30)
REFERRAL_CONVERSION_WINDOW_DAYS = env_int("REFERRAL_CONVERSION_WINDOW_DAYS", 7)

# Intervalles par clé de requête ("<domaine>.<vue>"), en millisecondes
POLLING_INTERVALS_MS = {
    "default": 60_000,
    "sms.unread-count": 30_000,
    "sms.conversations": 30_000,
    "sms.conversation": 30_000,
    "clients.new": 300_000,
    "referrals.new": 300_000,
    "referrals.pending-count": 300_000,
    "referrals.pending": 300_000,
    "referrals.conversions": 300_000,
    "activities.feed": 60_000,
}

# ======================================================================
# SÉCURITÉ / PROXY
# ======================================================================
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

if DEBUG:
    SECURE_SSL_REDIRECT = False
    SESSION_COOKIE_SECURE = False
    CSRF_COOKIE_SECURE = False
else:
    SECURE_SSL_REDIRECT = env_bool("SECURE_SSL_REDIRECT", True)
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True

# ======================================================================
# LOGGING
# ======================================================================
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "root": {"handlers": ["console"], "level": "INFO" if not DEBUG else "DEBUG"},
    "loggers": {
        "django.db.backends": {"level": "INFO"},
        "dashboard": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "rewards": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "sms": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "core.sync": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}
