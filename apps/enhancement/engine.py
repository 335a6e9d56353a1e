import logging
import uuid
from typing import Optional, Union

from apps.kie.client import KieClient, Submission
from apps.kie.poller import CompletionPoller

from . import cache
from .errors import PollInProgress, ValidationError
from .persister import ResultPersister
from .prompt_assembler import assemble_prompt
from .quota import QuotaGuard
from .reference_selector import select_references
from .schemas import DebugPreview, GenerationOutcome, GenerationRequest, PreparedGeneration
from .storage import resolve_source_url

logger = logging.getLogger(__name__)


class GenerationEngine:
    """
    Runs one generate request through the pipeline:
    prompt assembly -> reference selection -> quota check -> submission ->
    completion polling -> persistence.

    prepare() is local work only (database reads, no provider calls), so
    validation and quota rejections never cost a provider job. submit() and
    complete() are split so a job that already has a task id can be resumed
    by polling instead of being submitted twice.
    """

    def __init__(
        self,
        client: Optional[KieClient] = None,
        poller: Optional[CompletionPoller] = None,
        persister: Optional[ResultPersister] = None,
        quota_guard: Optional[QuotaGuard] = None,
    ):
        self.client = client or KieClient()
        self.poller = poller or CompletionPoller(self.client)
        self.persister = persister or ResultPersister()
        self.quota_guard = quota_guard or QuotaGuard()

    def validate(self, request: GenerationRequest) -> None:
        if not request.source_image:
            raise ValidationError("A source image URL or storage path is required")
        if not request.enhancement_ids:
            raise ValidationError("At least one enhancement must be selected")

    def prepare(self, request: GenerationRequest) -> PreparedGeneration:
        self.validate(request)

        assembled = assemble_prompt(request.enhancement_ids, request.category_label, request.custom_text())
        logger.info("Generating enhanced image for: %s", ", ".join(assembled.titles))

        references = select_references(
            assembled.text,
            assembled.title_text,
            resolve_source_url(request.source_image),
            watermark=request.watermark,
        )

        self.quota_guard.enforce(request.caller_id, request.caller_email)

        return PreparedGeneration(
            request=request,
            prompt=references.prompt,
            image_urls=references.urls,
            titles=assembled.titles,
            model_variant=references.model_variant,
            needs_model=references.needs_model,
        )

    def preview(self, prepared: PreparedGeneration) -> DebugPreview:
        submission = self.client.submit(prepared.prompt, prepared.image_urls, debug=True)
        return DebugPreview(
            payload=submission.payload,
            image_urls=prepared.image_urls,
            prompt=prepared.prompt,
            model_variant=prepared.model_variant,
            needs_model=prepared.needs_model,
        )

    def submit(self, prepared: PreparedGeneration) -> Submission:
        logger.info(
            "Submitting %d image(s) (%s)",
            len(prepared.image_urls), "product + model" if prepared.needs_model else "product only",
        )
        return self.client.submit(prepared.prompt, prepared.image_urls)

    def complete(self, prepared: PreparedGeneration, task_id: str) -> GenerationOutcome:
        owner = uuid.uuid4().hex
        if not cache.acquire_poll_lease(task_id, owner):
            raise PollInProgress(f"Task {task_id} is already being polled", task_id=task_id)
        try:
            result_url = self.poller.wait_for_result(task_id)
        finally:
            cache.release_poll_lease(task_id, owner)

        persisted = self.persister.persist(result_url, prepared, task_id=task_id)
        return GenerationOutcome(
            generated_image_url=persisted.url,
            prompt_used=prepared.prompt,
            task_id=task_id,
            storage_path=persisted.storage_path,
            warnings=persisted.warnings,
        )

    def process_request(self, request: GenerationRequest) -> Union[GenerationOutcome, DebugPreview]:
        """Main entry point: run every stage in order for one request."""
        prepared = self.prepare(request)
        if request.debug:
            return self.preview(prepared)
        submission = self.submit(prepared)
        return self.complete(prepared, submission.task_id)
