from django.db import models
import uuid

from apps.enhancement.schemas import GenerationRequest, PreparedGeneration


class GenerationJob(models.Model):
    STATUS_CHOICES = [
        ('QUEUED', 'Queued'),
        ('SUBMITTED', 'Submitted'),
        ('SUCCESS', 'Success'),
        ('ERROR', 'Error'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    caller_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    caller_email = models.EmailField(null=True, blank=True)
    request = models.JSONField(default=dict)

    prompt_used = models.TextField()
    image_urls = models.JSONField(default=list)
    titles = models.JSONField(default=list)
    model_variant = models.CharField(max_length=32, default='none')
    needs_model = models.BooleanField(default=False)

    # Provider task id; once set the job is only ever resumed, never resubmitted
    task_id = models.CharField(max_length=128, null=True, blank=True, unique=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='QUEUED')

    generated_image_url = models.TextField(null=True, blank=True)
    storage_path = models.TextField(null=True, blank=True)
    error = models.JSONField(default=dict, blank=True)
    warnings = models.JSONField(default=list, blank=True)

    def __str__(self):
        return f"{self.id} - {self.status}"

    @classmethod
    def from_prepared(cls, prepared):
        request = prepared.request
        return cls.objects.create(
            caller_id=request.caller_id,
            caller_email=request.caller_email,
            request=request.to_dict(),
            prompt_used=prepared.prompt,
            image_urls=list(prepared.image_urls),
            titles=list(prepared.titles),
            model_variant=prepared.model_variant,
            needs_model=prepared.needs_model,
        )

    def to_prepared(self):
        return PreparedGeneration(
            request=GenerationRequest.from_dict(self.request),
            prompt=self.prompt_used,
            image_urls=tuple(self.image_urls),
            titles=tuple(self.titles),
            model_variant=self.model_variant,
            needs_model=self.needs_model,
        )

    def mark_submitted(self, task_id):
        self.task_id = task_id
        self.status = 'SUBMITTED'
        self.save(update_fields=['task_id', 'status', 'updated_at'])

    def mark_success(self, outcome):
        self.status = 'SUCCESS'
        self.generated_image_url = outcome.generated_image_url
        self.storage_path = outcome.storage_path
        self.warnings = [w.to_dict() for w in outcome.warnings]
        self.error = {}
        self.save()

    def mark_failed(self, error):
        self.status = 'ERROR'
        self.error = dict(error.to_dict(), http_status=error.http_status)
        self.save(update_fields=['status', 'error', 'updated_at'])

    def to_response(self):
        if self.status == 'SUCCESS':
            return {
                "generatedImageUrl": self.generated_image_url,
                "promptUsed": self.prompt_used,
                "taskId": self.task_id,
                "jobId": str(self.id),
                "warnings": self.warnings,
            }
        if self.status == 'ERROR':
            return {k: v for k, v in self.error.items() if k != 'http_status'}
        return None
