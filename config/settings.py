import os
import dj_database_url
from decimal import Decimal
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

# Security
DEBUG = os.getenv('DEBUG', '0') == '1'
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-key-CHANGE-IN-PRODUCTION')

# Parse ALLOWED_HOSTS from env (comma-separated)
ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')

# --- 1. APPS ---
INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',

    #Local Apps
    'core',
    'academics',
    'students',
]

# --- 2. MIDDLEWARE ---
MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

# --- 3. DATABASE ---
# Row locks (select_for_update) only take effect on a server backend such as
# PostgreSQL; SQLite serializes writers instead.
DATABASES = {
    'default': dj_database_url.config(
        default=os.getenv('DATABASE_URL', f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
        conn_max_age=600,  # Connection pooling
        conn_health_checks=True,  # Health checks
    )
}

ROOT_URLCONF = 'config.urls'

WSGI_APPLICATION = 'config.wsgi.application'

# --- 4. SECURITY (Production) ---
if not DEBUG:
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
    SECURE_CONTENT_TYPE_NOSNIFF = True

# --- 5. LEVEL PROGRESSION ---
# Grades are on a 0-10 scale.
PROGRESSION_PASS_GRADE = Decimal(os.getenv('PROGRESSION_PASS_GRADE', '7'))
PROGRESSION_RECOVERY_GRADE = Decimal(os.getenv('PROGRESSION_RECOVERY_GRADE', '5'))
PROGRESSION_MAX_GRADE = Decimal(os.getenv('PROGRESSION_MAX_GRADE', '10'))

# Enrollment numbers are owned by the sequence generator below.
PROGRESSION_ENROLLMENT_NUMBER_PREFIX = os.getenv('ENROLLMENT_NUMBER_PREFIX', 'E')
PROGRESSION_ENROLLMENT_NUMBER_GENERATOR = os.getenv(
    'ENROLLMENT_NUMBER_GENERATOR',
    'students.sequences.next_enrollment_number',
)

# --- 6. LOGGING ---
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': os.getenv('DJANGO_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
        'students': {
            'handlers': ['console'],
            'level': os.getenv('PROGRESSION_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}

# --- 7. INTERNATIONALIZATION ---
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# --- 8. DEFAULT PRIMARY KEY ---
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
