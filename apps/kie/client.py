"""KIE AI job API client: task submission and status lookup."""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence
import logging

import httpx
from django.conf import settings

from apps.enhancement.errors import SubmissionFailed, UpstreamQuotaExhausted, UpstreamRateLimited

logger = logging.getLogger(__name__)

CREATE_TASK_PATH = "/api/v1/jobs/createTask"
RECORD_INFO_PATH = "/api/v1/jobs/recordInfo"

OUTPUT_FORMAT = "png"
IMAGE_SIZE = "1:1"


@dataclass
class Submission:
    payload: Dict[str, Any]
    task_id: Optional[str] = None
    debug: bool = False


class KieClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.KIE_AI_API_KEY
        self._base_url = (base_url or settings.KIE_AI_BASE_URL).rstrip("/")
        self.model = model or settings.KIE_AI_MODEL
        self._timeout = timeout or settings.KIE_AI_TIMEOUT
        self._transport = transport

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        with httpx.Client(
            base_url=self._base_url, headers=headers, timeout=self._timeout, transport=self._transport
        ) as client:
            return client.request(method, path, **kwargs)

    def build_payload(self, prompt: str, image_urls: Sequence[str]) -> Dict[str, Any]:
        return {
            "model": self.model,
            "input": {
                "prompt": prompt,
                "image_urls": list(image_urls),
                "output_format": OUTPUT_FORMAT,
                "image_size": IMAGE_SIZE,
            },
        }

    def submit(self, prompt: str, image_urls: Sequence[str], debug: bool = False) -> Submission:
        """
        Create a generation task and return its id.
        In debug mode the payload is built and returned without any network call.
        Failures are mapped to the upstream error taxonomy and never retried here.
        """
        payload = self.build_payload(prompt, image_urls)
        if debug:
            logger.info("Debug mode: skipping task submission")
            return Submission(payload=payload, debug=True)

        if not self._api_key:
            raise SubmissionFailed("Generation provider API key is not configured")

        logger.info("Submitting generation task with %d image(s)", len(payload["input"]["image_urls"]))
        logger.debug("Generation payload: %s", payload)
        try:
            response = self._request("post", CREATE_TASK_PATH, json=payload)
        except httpx.HTTPError as e:
            raise SubmissionFailed("Could not reach generation provider", details=str(e)) from e

        if response.status_code == 429:
            raise UpstreamRateLimited("Rate limit exceeded. Please try again later.")
        if response.status_code == 402:
            logger.error("Generation provider reports exhausted credits")
            raise UpstreamQuotaExhausted("API credits exhausted. Please contact support.")
        if not response.is_success:
            logger.error("Task submission failed: %s %s", response.status_code, response.text)
            raise SubmissionFailed(
                f"Provider returned HTTP {response.status_code}", details=response.text
            )

        try:
            body = response.json()
        except ValueError as e:
            raise SubmissionFailed("Provider returned a non-JSON response", details=response.text) from e

        data = body.get("data") if isinstance(body, dict) else None
        task_id = data.get("taskId") if isinstance(data, dict) else None
        if not task_id:
            logger.error("No task id in provider response: %s", body)
            raise SubmissionFailed("No task ID received from provider", details=body)

        logger.info("Task created: %s", task_id)
        return Submission(payload=payload, task_id=str(task_id))

    def record_info(self, task_id: str) -> httpx.Response:
        """Raw status lookup; transport errors propagate as httpx.HTTPError."""
        return self._request("get", RECORD_INFO_PATH, params={"taskId": task_id})
