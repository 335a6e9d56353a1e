from unittest import mock
from urllib.parse import urlparse

import httpx
from celery.exceptions import Retry
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from apps.api.models import GenerationJob
from apps.api.serializers import GenerateRequestSerializer
from apps.api.views import lease_retry_policy, process_generation_task
from apps.enhancement.cache import acquire_poll_lease, lease_key
from apps.enhancement.models import QuotaCounter
from apps.enhancement.quota import current_period
from apps.enhancement.storage import sign_path

from .providers import IN_MEMORY_STORAGES, RESULT_URL, ScriptedProvider, png_bytes, status_body
from .test_engine import build_engine, generation_request


class GenerateRequestSerializerTests(TestCase):
    def test_aliases_fold_into_one_request(self):
        serializer = GenerateRequestSerializer(data={
            "originalImagePath": "user/7/a.jpg",
            "imageUrl": "https://ignored.test/b.jpg",
            "enhancements": [{"id": "white_background"}, "color_correction", {"title": "white_background"}],
            "classification": "fashion",
            "watermark": {"type": "text", "text": "ACME", "position": "bottom-right"},
            "customPose": "  sitting ",
            "debugMode": True,
        })
        self.assertTrue(serializer.is_valid(), serializer.errors)
        request = serializer.to_generation_request("7", "shop@example.com")
        self.assertEqual(request.source_image, "user/7/a.jpg")
        self.assertEqual(request.enhancement_ids, ("white_background", "color_correction"))
        self.assertEqual(request.category_label, "fashion")
        self.assertEqual(request.watermark.kind, "text")
        self.assertEqual(request.watermark.position, "bottom-right")
        self.assertEqual(request.custom_pose, "sitting")
        self.assertTrue(request.debug)

    def test_enhancement_ids_take_priority(self):
        serializer = GenerateRequestSerializer(data={
            "sourceImage": "https://x/a.jpg",
            "enhancementIds": ["b", "a"],
            "enhancement": "c",
        })
        self.assertTrue(serializer.is_valid(), serializer.errors)
        self.assertEqual(serializer.to_generation_request().enhancement_ids, ("b", "a"))

    def test_missing_fields_rejected(self):
        self.assertFalse(GenerateRequestSerializer(data={"enhancement": "a"}).is_valid())
        self.assertFalse(GenerateRequestSerializer(data={"sourceImage": "https://x/a.jpg"}).is_valid())


@override_settings(STORAGES=IN_MEMORY_STORAGES, GENERATION_MONTHLY_LIMIT=5, CELERY_TASK_ALWAYS_EAGER=True)
class GenerateApiTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user("shop", email="shop@example.com", password="pw")
        self.client = APIClient()
        self.client.force_authenticate(self.user)

    def tearDown(self):
        cache.clear()

    def use_provider(self, provider, max_attempts=None):
        engine = build_engine(provider, max_attempts=max_attempts)
        patcher = mock.patch("apps.api.views.GenerationEngine", return_value=engine)
        patcher.start()
        self.addCleanup(patcher.stop)
        return engine

    def generate(self, **body):
        data = {"sourceImage": "https://uploads.test/product.jpg", "enhancementIds": ["add_female_model"]}
        data.update(body)
        return self.client.post("/api/generate/", data, format="json")

    def test_generate_and_download(self):
        self.use_provider(ScriptedProvider([status_body("success", result_urls=[RESULT_URL])]))
        response = self.generate(categoryLabel="clothing")
        self.assertEqual(response.status_code, 200, response.data)
        self.assertEqual(response.data["taskId"], "task-1")
        self.assertIn("file 2", response.data["promptUsed"])
        self.assertEqual(response.data["warnings"], [])

        job = GenerationJob.objects.get(id=response.data["jobId"])
        self.assertEqual(job.status, "SUCCESS")

        download = self.client.get(urlparse(response.data["generatedImageUrl"]).path)
        self.assertEqual(download.status_code, 200)
        self.assertEqual(download["Content-Type"], "image/png")
        self.assertEqual(b"".join(download.streaming_content), png_bytes())

        status_response = self.client.get(f"/api/status/{job.id}/")
        self.assertEqual(status_response.status_code, 200)
        self.assertEqual(status_response.data["generatedImageUrl"], response.data["generatedImageUrl"])

    def test_invalid_request(self):
        response = self.client.post("/api/generate/", {"enhancementIds": ["a"]}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"], "invalid request")

    def test_quota_exceeded(self):
        QuotaCounter.objects.create(email="shop@example.com", period=current_period(), used=5)
        provider = ScriptedProvider()
        self.use_provider(provider)
        response = self.generate()
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data, {"error": "quota exceeded", "current": 5, "limit": 5})
        self.assertEqual(provider.provider_calls, 0)
        self.assertFalse(GenerationJob.objects.exists())

    def test_rate_limited(self):
        self.use_provider(ScriptedProvider(create_response=httpx.Response(429, text="slow down")))
        response = self.generate()
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.data["error"], "rate limited")

    def test_timeout(self):
        self.use_provider(ScriptedProvider([status_body("processing")]), max_attempts=2)
        response = self.generate()
        self.assertEqual(response.status_code, 504)
        self.assertEqual(response.data["error"], "generation timed out")
        self.assertEqual(response.data["taskId"], "task-1")

    def test_debug_mode(self):
        provider = ScriptedProvider()
        self.use_provider(provider)
        response = self.generate(debug=True)
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["debugMode"])
        self.assertEqual(provider.provider_calls, 0)
        self.assertFalse(GenerationJob.objects.exists())

    def test_resumed_job_is_not_resubmitted(self):
        provider = ScriptedProvider([status_body("success", result_urls=[RESULT_URL])])
        engine = self.use_provider(provider)
        job = GenerationJob.from_prepared(engine.prepare(generation_request(caller_id=str(self.user.pk))))
        job.mark_submitted("task-9")

        process_generation_task.apply(args=[str(job.id)])
        job.refresh_from_db()
        self.assertEqual(job.status, "SUCCESS")
        self.assertEqual(provider.create_calls, 0)
        self.assertEqual(provider.status_calls, 1)

    def test_task_status_lookup(self):
        provider = ScriptedProvider([status_body("success", result_urls=[RESULT_URL])])
        engine = self.use_provider(provider)
        job = GenerationJob.from_prepared(engine.prepare(generation_request(caller_id=str(self.user.pk))))
        job.mark_submitted("task-1")

        response = self.client.get("/api/tasks/task-1/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["state"], "success")
        self.assertEqual(response.data["generatedImageUrl"], RESULT_URL)

    def test_other_callers_job_is_hidden(self):
        engine = self.use_provider(ScriptedProvider())
        job = GenerationJob.from_prepared(engine.prepare(generation_request(caller_id="someone-else")))
        self.assertEqual(self.client.get(f"/api/status/{job.id}/").status_code, 404)


class SignedMediaTests(TestCase):
    def test_expired_link(self):
        token = sign_path("generated", "7/1-enhanced.png", ttl=60, now=0)
        self.assertEqual(self.client.get(f"/media/signed/{token}/").status_code, 403)

    def test_tampered_link(self):
        token = sign_path("generated", "7/1-enhanced.png", ttl=60)
        self.assertEqual(self.client.get(f"/media/signed/{token}x/").status_code, 403)

    @override_settings(STORAGES=IN_MEMORY_STORAGES)
    def test_missing_file(self):
        token = sign_path("generated", "7/missing.png", ttl=60)
        self.assertEqual(self.client.get(f"/media/signed/{token}/").status_code, 404)


@override_settings(STORAGES=IN_MEMORY_STORAGES, GENERATION_MONTHLY_LIMIT=5)
class LeasedTaskTests(TestCase):
    def setUp(self):
        self.provider = ScriptedProvider([status_body("success", result_urls=[RESULT_URL])])
        engine = build_engine(self.provider)
        patcher = mock.patch("apps.api.views.GenerationEngine", return_value=engine)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.job = GenerationJob.from_prepared(engine.prepare(generation_request()))
        self.job.mark_submitted("task-1")
        acquire_poll_lease("task-1", "crashed-worker")

    def tearDown(self):
        cache.clear()

    def test_leased_task_is_retried(self):
        with mock.patch("celery.app.task.Task.retry", side_effect=Retry("lease held")) as retry:
            with self.assertRaises(Retry):
                process_generation_task(str(self.job.id))
        countdown, max_retries = lease_retry_policy()
        retry.assert_called_once_with(countdown=countdown, max_retries=max_retries)
        self.job.refresh_from_db()
        self.assertEqual(self.job.status, "SUBMITTED")
        self.assertEqual(self.provider.status_calls, 0)

    def test_retry_resumes_polling_after_lease_expires(self):
        cache.delete(lease_key("task-1"))
        process_generation_task.apply(args=[str(self.job.id)], retries=1)
        self.job.refresh_from_db()
        self.assertEqual(self.job.status, "SUCCESS")
        self.assertEqual(self.provider.create_calls, 0)

    def test_lease_held_past_all_retries_fails_job(self):
        _, max_retries = lease_retry_policy()
        process_generation_task.apply(args=[str(self.job.id)], retries=max_retries)
        self.job.refresh_from_db()
        self.assertEqual(self.job.status, "ERROR")
        self.assertEqual(self.job.error["error"], "poll in progress")
        self.assertEqual(self.provider.status_calls, 0)
