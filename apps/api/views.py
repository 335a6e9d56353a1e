from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from django.conf import settings
from django.core import signing
from django.core.files.storage import storages
from django.http import FileResponse, Http404, HttpResponseForbidden
from django.shortcuts import get_object_or_404
from django.views import View
from .models import GenerationJob
from .serializers import GenerateRequestSerializer, GenerationJobSerializer
from apps.enhancement import errors
from apps.enhancement.cache import lease_timeout
from apps.enhancement.engine import GenerationEngine
from apps.enhancement.storage import unsign_path
from celery import shared_task
import logging
import mimetypes

logger = logging.getLogger(__name__)


def lease_retry_policy():
    """(countdown, max_retries) covering one full poll lease lifetime."""
    countdown = max(int(settings.GENERATION_POLL_INTERVAL * 5), 1)
    return countdown, lease_timeout() // countdown + 1


@shared_task(bind=True, acks_late=True)
def process_generation_task(self, job_id):
    """
    Submit (if needed), poll and persist one generation job.
    A job that already has a task id is resumed by polling, never resubmitted.
    While another worker holds the poll lease the task retries, so a lease
    left behind by a crashed worker is picked up once it expires.
    """
    job = GenerationJob.objects.get(id=job_id)
    if job.status in ('SUCCESS', 'ERROR'):
        logger.info("Job %s already finished with %s", job_id, job.status)
        return

    prepared = job.to_prepared()
    engine = GenerationEngine()
    try:
        if not job.task_id:
            submission = engine.submit(prepared)
            job.mark_submitted(submission.task_id)
        else:
            logger.info("Resuming job %s with existing task %s", job_id, job.task_id)

        outcome = engine.complete(prepared, job.task_id)
        job.mark_success(outcome)

    except errors.PollInProgress as e:
        countdown, max_retries = lease_retry_policy()
        if self.request.retries >= max_retries:
            logger.error("Task %s still leased after %d retries", job.task_id, self.request.retries)
            job.mark_failed(e)
            return
        logger.info("Task %s is already being polled, retrying in %ss", job.task_id, countdown)
        raise self.retry(countdown=countdown, max_retries=max_retries)
    except errors.GenerationError as e:
        logger.error("Job %s failed: %s (%s)", job_id, e.error, e.message)
        job.mark_failed(e)
    except Exception as e:
        logger.exception("Job %s crashed: %s", job_id, e)
        job.mark_failed(errors.GenerationError(str(e), task_id=job.task_id))


def _caller(request):
    user = request.user
    if user and user.is_authenticated:
        return str(user.pk), (user.email or None)
    return None, None


def _job_for_caller(request, **lookup):
    caller_id, _ = _caller(request)
    job = get_object_or_404(GenerationJob, **lookup)
    if job.caller_id and job.caller_id != caller_id:
        raise Http404
    return job


def _job_response(job):
    body = job.to_response()
    if job.status == 'SUCCESS':
        return Response(body)
    if job.status == 'ERROR':
        return Response(body, status=job.error.get('http_status', status.HTTP_500_INTERNAL_SERVER_ERROR))
    return Response(GenerationJobSerializer(job).data, status=status.HTTP_202_ACCEPTED)


class GenerateView(APIView):
    def post(self, request):
        serializer = GenerateRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"error": errors.ValidationError.error, "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        caller_id, caller_email = _caller(request)
        generation_request = serializer.to_generation_request(caller_id, caller_email)

        # Validation, prompt assembly and the quota check run here, before any
        # provider call, so rejections are synchronous and cost nothing upstream.
        engine = GenerationEngine()
        try:
            prepared = engine.prepare(generation_request)
            if generation_request.debug:
                return Response(engine.preview(prepared).to_response())
        except errors.GenerationError as e:
            return Response(e.to_dict(), status=e.http_status)

        job = GenerationJob.from_prepared(prepared)

        # Queue task - use apply() in eager mode to execute synchronously without broker
        if getattr(settings, 'CELERY_TASK_ALWAYS_EAGER', False):
            process_generation_task.apply(args=[str(job.id)])
            job.refresh_from_db()
        else:
            process_generation_task.delay(str(job.id))

        return _job_response(job)


class StatusView(APIView):
    def get(self, request, request_id):
        job = _job_for_caller(request, id=request_id)
        return _job_response(job)


class TaskStatusView(APIView):
    """One-shot provider status lookup for a task owned by the caller."""

    def get(self, request, task_id):
        job = _job_for_caller(request, task_id=task_id)
        engine = GenerationEngine()
        observation = engine.poller.observe(task_id)
        if observation.transient:
            return Response(
                {"error": "Failed to check task status", "taskId": task_id},
                status=status.HTTP_502_BAD_GATEWAY,
            )

        body = {"taskId": task_id, "jobId": str(job.id), "state": observation.state}
        if observation.state == "success" and observation.result_urls:
            body.update(
                success=True,
                generatedImageUrl=observation.result_urls[0],
                resultUrls=list(observation.result_urls),
            )
        elif observation.state == "success":
            body.update(success=False, error=observation.result_error)
        elif observation.state == "fail":
            body.update(success=False, error=observation.fail_message)
        else:
            body.update(success=False, status="processing", message="Task is still processing")
        return Response(body)


class SignedMediaView(View):
    """Serve a stored image behind a signed, expiring token."""

    def get(self, request, token):
        try:
            alias, path = unsign_path(token)
        except signing.BadSignature:
            return HttpResponseForbidden("Invalid or expired link")

        storage = storages[alias]
        if not storage.exists(path):
            raise Http404
        content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
        return FileResponse(storage.open(path, "rb"), content_type=content_type)
