import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-default-key')

DEBUG = os.getenv('DEBUG', 'False') == 'True'

ALLOWED_HOSTS = ['0.0.0.0', 'localhost'] + [h for h in os.getenv('ALLOWED_HOSTS', '').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.staticfiles',
    'rest_framework',
    'apps.api',
    'apps.enhancement',
    'apps.kie',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'pixelnova.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
            ],
        },
    },
]

WSGI_APPLICATION = 'pixelnova.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

MEDIA_URL = 'media/'
MEDIA_ROOT = BASE_DIR / 'media'

# Uploaded sources and generated results live in separate storages so a
# signed URL can name the storage it points into.
STORAGES = {
    'default': {
        'BACKEND': 'django.core.files.storage.FileSystemStorage',
    },
    'uploads': {
        'BACKEND': 'django.core.files.storage.FileSystemStorage',
        'OPTIONS': {'location': MEDIA_ROOT / 'upload-images'},
    },
    'generated': {
        'BACKEND': 'django.core.files.storage.FileSystemStorage',
        'OPTIONS': {'location': MEDIA_ROOT / 'generated-images'},
    },
    'staticfiles': {
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Celery Configuration
CELERY_TASK_ALWAYS_EAGER = os.getenv('CELERY_TASK_ALWAYS_EAGER', 'True') == 'True'

# When CELERY_TASK_ALWAYS_EAGER is True, tasks run synchronously and don't need a broker
if CELERY_TASK_ALWAYS_EAGER:
    CELERY_BROKER_URL = 'memory://'
    CELERY_RESULT_BACKEND = 'cache://'
else:
    CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
    CELERY_RESULT_BACKEND = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')

CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = 'UTC'

if CELERY_TASK_ALWAYS_EAGER:
    CELERY_BROKER_CONNECTION_RETRY_ON_STARTUP = False
    CELERY_BROKER_CONNECTION_RETRY = False

# Redis Cache - fallback to local memory cache if Redis not available.
# The cache holds the per-task poll leases, so multi-worker deployments need Redis.
if CELERY_TASK_ALWAYS_EAGER:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "unique-snowflake",
        }
    }
else:
    try:
        import redis
        redis_client = redis.from_url(os.getenv('REDIS_URL', 'redis://localhost:6379/1'), socket_connect_timeout=1)
        redis_client.ping()
        CACHES = {
            "default": {
                "BACKEND": "django_redis.cache.RedisCache",
                "LOCATION": os.getenv('REDIS_URL', 'redis://localhost:6379/1'),
                "OPTIONS": {
                    "CLIENT_CLASS": "django_redis.client.DefaultClient",
                }
            }
        }
    except (ImportError, Exception):
        # Fallback to local memory cache if Redis is not available
        CACHES = {
            "default": {
                "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
                "LOCATION": "unique-snowflake",
            }
        }

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'apps': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'celery': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
}

# Public origin used to build absolute signed URLs the provider can fetch
PUBLIC_BASE_URL = os.getenv('PUBLIC_BASE_URL', 'http://localhost:8000').rstrip('/')

# KIE AI Config
KIE_AI_API_KEY = os.getenv('KIE_AI_API_KEY')
KIE_AI_BASE_URL = os.getenv('KIE_AI_BASE_URL', 'https://api.kie.ai')
KIE_AI_MODEL = os.getenv('KIE_AI_MODEL', 'google/nano-banana-edit')
KIE_AI_TIMEOUT = float(os.getenv('KIE_AI_TIMEOUT', '60'))

# Generation Config
GENERATION_POLL_INTERVAL = float(os.getenv('GENERATION_POLL_INTERVAL', '2'))
GENERATION_POLL_MAX_ATTEMPTS = int(os.getenv('GENERATION_POLL_MAX_ATTEMPTS', '60'))
GENERATION_MONTHLY_LIMIT = int(os.getenv('GENERATION_MONTHLY_LIMIT', '100'))
GENERATION_ALLOW_ANONYMOUS = os.getenv('GENERATION_ALLOW_ANONYMOUS', 'True') == 'True'
GENERATION_MAX_RESULT_BYTES = 20 * 1024 * 1024  # 20MB

SOURCE_URL_TTL = int(os.getenv('SOURCE_URL_TTL', '3600'))  # 1 hour
GENERATED_URL_TTL = int(os.getenv('GENERATED_URL_TTL', str(60 * 60 * 24 * 7)))  # 7 days

MODEL_ASSETS_BASE_URL = os.getenv('MODEL_ASSETS_BASE_URL', f'{PUBLIC_BASE_URL}/static/model-assets').rstrip('/')
MODEL_REFERENCE_ASSETS = {
    'female': f'{MODEL_ASSETS_BASE_URL}/model_female.png',
    'female_hijab': f'{MODEL_ASSETS_BASE_URL}/model_female_hijab.png',
    'male': f'{MODEL_ASSETS_BASE_URL}/model_male.png',
}
