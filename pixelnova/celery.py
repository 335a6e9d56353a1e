import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'pixelnova.settings')

import django
django.setup()
from django.conf import settings

CELERY_TASK_ALWAYS_EAGER = getattr(settings, 'CELERY_TASK_ALWAYS_EAGER', False)

# Set broker in constructor so config loading cannot point eager mode at Redis
if CELERY_TASK_ALWAYS_EAGER:
    app = Celery('pixelnova', broker='memory://', backend='cache://')
else:
    app = Celery('pixelnova')

app.config_from_object('django.conf:settings', namespace='CELERY')

if CELERY_TASK_ALWAYS_EAGER:
    app.conf.broker_url = 'memory://'
    app.conf.result_backend = 'cache://'
    app.conf.task_always_eager = True
    app.conf.task_eager_propagates = True
    app.conf.broker_connection_retry_on_startup = False
    app.conf.broker_connection_retry = False
    app.conf.broker_transport = 'memory'
else:
    # A worker restarted mid-poll must redeliver the task so polling resumes
    # from the stored task id instead of dropping the job.
    app.conf.task_acks_late = True
    app.conf.task_reject_on_worker_lost = True
    app.conf.worker_prefetch_multiplier = 1

# Tasks live in apps.api.views, next to the views that queue them
app.autodiscover_tasks(['apps.api'], related_name='views')
