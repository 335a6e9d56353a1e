import logging
from typing import Optional

import httpx
from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import Storage, storages
from django.db import DatabaseError, transaction

from . import quota
from .errors import PersistenceWarning
from .imaging import InvalidImage, decode_data_uri, ensure_png
from .models import GenerationHistory
from .schemas import PersistedResult, PreparedGeneration
from .storage import GENERATED_STORAGE, result_key, signed_url

logger = logging.getLogger(__name__)


class ResultPersister:
    """
    Stores a generated image and records it.

    Once the provider has produced an image the caller always gets a URL
    back: storage, history and quota failures become PersistenceWarning
    entries on the result and are logged for reconciliation.
    """

    def __init__(self, storage: Optional[Storage] = None, transport: Optional[httpx.BaseTransport] = None):
        self._storage = storage
        self._transport = transport

    @property
    def storage(self) -> Storage:
        return self._storage or storages[GENERATED_STORAGE]

    def fetch(self, result_url: str) -> bytes:
        if result_url.startswith("data:"):
            return decode_data_uri(result_url)
        with httpx.Client(timeout=settings.KIE_AI_TIMEOUT, transport=self._transport, follow_redirects=True) as client:
            response = client.get(result_url)
            response.raise_for_status()
            return response.content

    def store(self, result_url: str, caller_id: str) -> str:
        image_bytes = ensure_png(self.fetch(result_url))
        return self.storage.save(result_key(caller_id), ContentFile(image_bytes))

    def persist(self, result_url: str, prepared: PreparedGeneration, task_id: Optional[str] = None) -> PersistedResult:
        request = prepared.request
        if request.is_anonymous:
            return PersistedResult(url=result_url)

        result = PersistedResult(url=result_url)

        try:
            result.storage_path = self.store(result_url, request.caller_id)
            result.url = signed_url(GENERATED_STORAGE, result.storage_path, settings.GENERATED_URL_TTL)
            logger.info("Stored generated image at %s", result.storage_path)
        except (httpx.HTTPError, InvalidImage, OSError) as e:
            self._warn(result, "storage", f"Could not store generated image: {e}")

        if result.storage_path:
            try:
                with transaction.atomic():
                    GenerationHistory.objects.create(
                        user_id=request.caller_id,
                        user_email=request.caller_email,
                        source_image_path=request.source_image,
                        result_image_path=result.storage_path,
                        enhancement_label=prepared.enhancement_label,
                        category_label=request.category_label or "unknown",
                        prompt_used=prepared.prompt,
                        task_id=task_id,
                    )
            except DatabaseError as e:
                self._warn(result, "history", f"Could not save generation history: {e}")

        if request.caller_email:
            try:
                with transaction.atomic():
                    quota.increment_usage(request.caller_email)
            except DatabaseError as e:
                self._warn(result, "quota", f"Could not increment usage for {request.caller_email}: {e}")

        return result

    def _warn(self, result: PersistedResult, stage: str, message: str) -> None:
        logger.error("Persistence warning [%s]: %s", stage, message)
        result.warnings.append(PersistenceWarning(stage=stage, message=message))
