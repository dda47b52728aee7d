import os
from pathlib import Path
from dotenv import load_dotenv

# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env file
load_dotenv(BASE_DIR / ".env")

# Django Security
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-secret")
DEBUG = os.getenv("DEBUG", "1") == "1"
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(",")

# Installed Apps
INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.staticfiles",
    "rest_framework",
    "vault.apps.VaultConfig",
]

# Middleware
MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
            ],
        },
    },
]

# Database (SQLite for now)
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db" / "vault.db",
    }
}

USE_TZ = True

# Static & Media
STATIC_URL = "/static/"
MEDIA_ROOT = os.getenv("MEDIA_ROOT", BASE_DIR / "media")

# Encrypted filesystem. key, cipher-method and root are required; the
# storage refuses to start without them.
ENCRYPTED_FILESYSTEM = {
    "key": os.getenv("ENCRYPTED_FILESYSTEM_KEY", ""),
    "cipher-method": os.getenv("ENCRYPTED_FILESYSTEM_CIPHER", "aes-256-cbc"),
    "root": os.getenv("ENCRYPTED_FILESYSTEM_ROOT", str(MEDIA_ROOT)),
    "lock": os.getenv("ENCRYPTED_FILESYSTEM_LOCK", "exclusive"),
    "links": os.getenv("ENCRYPTED_FILESYSTEM_LINKS", "disallow"),
    "block-size": os.getenv("ENCRYPTED_FILESYSTEM_BLOCK_SIZE", ""),
}

STORAGES = {
    "default": {
        "BACKEND": "utils.storage.EncryptedFileStorage",
    },
    "staticfiles": {
        "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
    },
}

# DRF
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
}

# Signed download links
DOWNLOAD_TOKEN_TTL_SECONDS = int(os.getenv("DOWNLOAD_TOKEN_TTL_SECONDS", "600"))

# Optional public base URL for download links (e.g. https://files.example.com)
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "").rstrip("/")

# Respect proxy headers when running behind a reverse proxy.
USE_X_FORWARDED_HOST = True
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

# Logging Level
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "vault": {"handlers": ["console"], "level": LOG_LEVEL},
        "utils": {"handlers": ["console"], "level": LOG_LEVEL},
    },
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
