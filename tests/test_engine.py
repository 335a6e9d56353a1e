from django.conf import settings
from django.core.cache import cache
from django.test import TestCase, override_settings

from apps.enhancement import errors
from apps.enhancement.cache import acquire_poll_lease
from apps.enhancement.engine import GenerationEngine
from apps.enhancement.models import GenerationHistory, QuotaCounter
from apps.enhancement.persister import ResultPersister
from apps.enhancement.quota import current_period, current_usage
from apps.enhancement.schemas import GenerationRequest
from apps.enhancement.storage import unsign_path
from apps.kie.poller import CompletionPoller

from .providers import IN_MEMORY_STORAGES, RESULT_URL, ScriptedProvider, status_body


def build_engine(provider, max_attempts=None):
    client = provider.client()
    return GenerationEngine(
        client=client,
        poller=CompletionPoller(client, interval=0, max_attempts=max_attempts, sleep=lambda seconds: None),
        persister=ResultPersister(transport=provider.transport),
    )


def generation_request(**overrides):
    data = dict(
        source_image="s3://bucket/product.jpg",
        enhancement_ids=("add_female_model",),
        category_label="clothing",
        caller_id="7",
        caller_email="shop@example.com",
    )
    data.update(overrides)
    return GenerationRequest(**data)


@override_settings(STORAGES=IN_MEMORY_STORAGES, GENERATION_MONTHLY_LIMIT=5)
class GenerationEngineTests(TestCase):
    def tearDown(self):
        cache.clear()

    def test_female_model_end_to_end(self):
        provider = ScriptedProvider([status_body("success", result_urls=[RESULT_URL])])
        outcome = build_engine(provider).process_request(generation_request())

        self.assertIn("/media/signed/", outcome.generated_image_url)
        self.assertIn("file 1", outcome.prompt_used)
        self.assertIn("file 2", outcome.prompt_used)
        self.assertIn("model_female.png", outcome.prompt_used)
        self.assertEqual(outcome.task_id, "task-1")
        self.assertEqual(
            provider.submitted[0]["input"]["image_urls"],
            ["s3://bucket/product.jpg", settings.MODEL_REFERENCE_ASSETS["female"]],
        )
        self.assertEqual(provider.create_calls, 1)
        self.assertEqual(GenerationHistory.objects.count(), 1)
        self.assertEqual(current_usage("shop@example.com"), 1)

    def test_quota_exceeded_makes_no_provider_call(self):
        QuotaCounter.objects.create(email="shop@example.com", period=current_period(), used=5)
        provider = ScriptedProvider([status_body("success", result_urls=[RESULT_URL])])
        with self.assertRaises(errors.QuotaExceeded) as ctx:
            build_engine(provider).process_request(generation_request())
        self.assertEqual(ctx.exception.to_dict(), {"error": "quota exceeded", "current": 5, "limit": 5})
        self.assertEqual(provider.provider_calls, 0)

    def test_last_unit_then_denied(self):
        QuotaCounter.objects.create(email="shop@example.com", period=current_period(), used=4)
        provider = ScriptedProvider([status_body("success", result_urls=[RESULT_URL])])
        engine = build_engine(provider)
        engine.process_request(generation_request())
        with self.assertRaises(errors.QuotaExceeded):
            engine.process_request(generation_request())
        self.assertEqual(provider.create_calls, 1)

    def test_failed_generation_consumes_no_quota(self):
        provider = ScriptedProvider([status_body("fail", fail_msg="nsfw content")])
        with self.assertRaises(errors.GenerationFailed):
            build_engine(provider).process_request(generation_request())
        self.assertEqual(current_usage("shop@example.com"), 0)
        self.assertFalse(GenerationHistory.objects.exists())

    def test_timeout_reports_task_id(self):
        provider = ScriptedProvider([status_body("processing")])
        with self.assertRaises(errors.GenerationTimeout) as ctx:
            build_engine(provider, max_attempts=3).process_request(generation_request())
        self.assertEqual(ctx.exception.to_dict()["taskId"], "task-1")
        self.assertEqual(provider.status_calls, 3)

    def test_debug_preview_skips_provider(self):
        provider = ScriptedProvider()
        preview = build_engine(provider).process_request(generation_request(debug=True))
        body = preview.to_response()
        self.assertTrue(body["debugMode"])
        self.assertEqual(body["modelType"], "female")
        self.assertTrue(body["needsModel"])
        self.assertEqual(body["payload"]["input"]["image_urls"], body["imageUrls"])
        self.assertEqual(provider.provider_calls, 0)

    def test_storage_path_source_gets_signed_url(self):
        provider = ScriptedProvider()
        prepared = build_engine(provider).prepare(
            generation_request(source_image="/user/7/product.jpg", enhancement_ids=("white_background",))
        )
        self.assertEqual(len(prepared.image_urls), 1)
        token = prepared.image_urls[0].rstrip("/").rsplit("/", 1)[-1]
        self.assertEqual(unsign_path(token), ("uploads", "user/7/product.jpg"))

    def test_validation_happens_before_any_work(self):
        provider = ScriptedProvider()
        with self.assertRaises(errors.ValidationError):
            build_engine(provider).process_request(generation_request(enhancement_ids=()))
        with self.assertRaises(errors.ValidationError):
            build_engine(provider).process_request(generation_request(source_image=""))
        self.assertEqual(provider.provider_calls, 0)

    def test_second_poller_is_refused(self):
        provider = ScriptedProvider([status_body("success", result_urls=[RESULT_URL])])
        engine = build_engine(provider)
        prepared = engine.prepare(generation_request())
        self.assertTrue(acquire_poll_lease("task-1", "other-worker"))
        with self.assertRaises(errors.PollInProgress):
            engine.complete(prepared, "task-1")
        self.assertEqual(provider.status_calls, 0)

    def test_lease_released_after_polling(self):
        provider = ScriptedProvider([status_body("fail", fail_msg="bad input")])
        engine = build_engine(provider)
        prepared = engine.prepare(generation_request())
        with self.assertRaises(errors.GenerationFailed):
            engine.complete(prepared, "task-1")
        self.assertTrue(acquire_poll_lease("task-1", "next-worker"))

    def test_anonymous_caller_gets_provider_url(self):
        provider = ScriptedProvider([status_body("success", result_urls=[RESULT_URL])])
        outcome = build_engine(provider).process_request(generation_request(caller_id=None, caller_email=None))
        self.assertEqual(outcome.generated_image_url, RESULT_URL)
        self.assertIsNone(outcome.storage_path)
        self.assertFalse(QuotaCounter.objects.exists())

    def test_signed_in_caller_without_email_cannot_generate(self):
        provider = ScriptedProvider([status_body("success", result_urls=[RESULT_URL])])
        engine = build_engine(provider)
        for _ in range(2):
            with self.assertRaises(errors.AuthenticationRequired):
                engine.process_request(generation_request(caller_email=None))
        self.assertEqual(provider.provider_calls, 0)
        self.assertFalse(GenerationHistory.objects.exists())
