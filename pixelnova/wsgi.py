import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'pixelnova.settings')

application = get_wsgi_application()

# Bind shared tasks to the configured Celery app so .delay() reaches the broker
import pixelnova.celery  # noqa: E402,F401
