import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='GenerationJob',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('caller_id', models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ('caller_email', models.EmailField(blank=True, max_length=254, null=True)),
                ('request', models.JSONField(default=dict)),
                ('prompt_used', models.TextField()),
                ('image_urls', models.JSONField(default=list)),
                ('titles', models.JSONField(default=list)),
                ('model_variant', models.CharField(default='none', max_length=32)),
                ('needs_model', models.BooleanField(default=False)),
                ('task_id', models.CharField(blank=True, max_length=128, null=True, unique=True)),
                ('status', models.CharField(choices=[('QUEUED', 'Queued'), ('SUBMITTED', 'Submitted'), ('SUCCESS', 'Success'), ('ERROR', 'Error')], default='QUEUED', max_length=20)),
                ('generated_image_url', models.TextField(blank=True, null=True)),
                ('storage_path', models.TextField(blank=True, null=True)),
                ('error', models.JSONField(blank=True, default=dict)),
                ('warnings', models.JSONField(blank=True, default=list)),
            ],
        ),
    ]
