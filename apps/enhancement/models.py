from django.db import models
import uuid


class EnhancementTemplate(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    enhancement_type = models.CharField(max_length=100, unique=True)
    display_name = models.CharField(max_length=200)
    prompt_template = models.TextField()
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.display_name


class CategorySystemPrompt(models.Model):
    category_code = models.CharField(max_length=100, unique=True)
    category_name = models.CharField(max_length=200)
    system_prompt = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return self.category_name


class GenerationHistory(models.Model):
    user_id = models.CharField(max_length=64, db_index=True)
    user_email = models.EmailField(null=True, blank=True)
    source_image_path = models.TextField()
    result_image_path = models.TextField()
    enhancement_label = models.TextField()
    category_label = models.CharField(max_length=200, default='unknown')
    prompt_used = models.TextField()
    task_id = models.CharField(max_length=128, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.user_id} - {self.enhancement_label}"


class QuotaAllowance(models.Model):
    """Per-account override of the monthly generation limit, keyed by email."""
    email = models.EmailField(unique=True)
    monthly_limit = models.PositiveIntegerField()

    def __str__(self):
        return f"{self.email}: {self.monthly_limit}/month"


class QuotaCounter(models.Model):
    """Generations used by an email address in one calendar month."""
    email = models.EmailField()
    period = models.DateField()  # first day of the month
    used = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['email', 'period'], name='unique_quota_counter_period'),
        ]

    def __str__(self):
        return f"{self.email} {self.period:%Y-%m}: {self.used}"
