"""
Completion polling for KIE AI tasks.

The poll loop is a finite state machine. parse_status() turns one HTTP reply
into an observation and advance() maps (state, observation) to the next
state; both are pure, so the whole machine can be driven by a scripted list
of replies. CompletionPoller only adds the timer and the HTTP call.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional, Tuple
import json
import logging
import time

import httpx
from django.conf import settings

from apps.enhancement.errors import GenerationFailed, GenerationTimeout, MalformedSuccessResponse
from .client import KieClient

logger = logging.getLogger(__name__)


class JobPhase(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAIL = "fail"
    TIMED_OUT = "timeout"
    MALFORMED = "malformed"


TERMINAL_PHASES = frozenset({JobPhase.SUCCESS, JobPhase.FAIL, JobPhase.TIMED_OUT, JobPhase.MALFORMED})
PROVIDER_STATES = frozenset({"pending", "processing", "success", "fail"})


@dataclass(frozen=True)
class StatusObservation:
    state: Optional[str] = None  # None when the reply was unusable
    result_urls: Tuple[str, ...] = ()
    result_error: Optional[str] = None
    fail_message: Optional[str] = None

    @property
    def transient(self) -> bool:
        return self.state not in PROVIDER_STATES


TRANSIENT = StatusObservation()


@dataclass(frozen=True)
class PollState:
    phase: JobPhase = JobPhase.PENDING
    attempts: int = 0
    result_url: Optional[str] = None
    failure_reason: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


def _parse_result_urls(result_json: Any) -> Tuple[Tuple[str, ...], Optional[str]]:
    if not result_json:
        return (), "Success reported without resultJson"
    try:
        result = json.loads(result_json) if isinstance(result_json, str) else result_json
    except ValueError as e:
        return (), f"Unparseable resultJson: {e}"
    urls = result.get("resultUrls") if isinstance(result, dict) else None
    if not isinstance(urls, list):
        return (), "resultJson has no resultUrls list"
    urls = tuple(u for u in urls if isinstance(u, str) and u)
    if not urls:
        return (), "resultJson has an empty resultUrls list"
    return urls, None


def parse_status(status_code: int, body: Any) -> StatusObservation:
    """Interpret one recordInfo reply. Anything unusable is transient."""
    if not 200 <= status_code < 300 or not isinstance(body, dict):
        return TRANSIENT
    data = body.get("data")
    if body.get("code") != 200 or not isinstance(data, dict):
        return TRANSIENT

    state = data.get("state")
    if state == "success":
        urls, error = _parse_result_urls(data.get("resultJson"))
        return StatusObservation(state=state, result_urls=urls, result_error=error)
    if state == "fail":
        reason = data.get("failMsg") or data.get("failCode") or "Unknown error"
        return StatusObservation(state=state, fail_message=str(reason))
    if state in PROVIDER_STATES:
        return StatusObservation(state=state)
    return TRANSIENT


def advance(state: PollState, observation: StatusObservation, max_attempts: int) -> PollState:
    """Pure transition function; every call consumes one attempt."""
    if state.terminal:
        return state

    attempts = state.attempts + 1
    if observation.state == "success":
        if observation.result_urls:
            return replace(state, phase=JobPhase.SUCCESS, attempts=attempts, result_url=observation.result_urls[0])
        return replace(state, phase=JobPhase.MALFORMED, attempts=attempts, failure_reason=observation.result_error)
    if observation.state == "fail":
        return replace(state, phase=JobPhase.FAIL, attempts=attempts, failure_reason=observation.fail_message)

    phase = state.phase
    if observation.state == "pending":
        phase = JobPhase.PENDING
    elif observation.state == "processing":
        phase = JobPhase.PROCESSING

    if attempts >= max_attempts:
        return replace(state, phase=JobPhase.TIMED_OUT, attempts=attempts)
    return replace(state, phase=phase, attempts=attempts)


class CompletionPoller:
    def __init__(
        self,
        client: KieClient,
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.interval = settings.GENERATION_POLL_INTERVAL if interval is None else interval
        self.max_attempts = settings.GENERATION_POLL_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self._sleep = sleep

    def observe(self, task_id: str) -> StatusObservation:
        try:
            response = self.client.record_info(task_id)
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Status check for %s failed: %s", task_id, e)
            return TRANSIENT
        return parse_status(response.status_code, body)

    def poll(self, task_id: str) -> PollState:
        state = PollState()
        while not state.terminal:
            self._sleep(self.interval)
            observation = self.observe(task_id)
            state = advance(state, observation, self.max_attempts)
            logger.info(
                "Poll attempt %d/%d for %s - state: %s",
                state.attempts, self.max_attempts, task_id, observation.state or "unavailable",
            )
        return state

    def wait_for_result(self, task_id: str) -> str:
        """Poll until the task ends; return the first result URL or raise."""
        state = self.poll(task_id)
        if state.phase == JobPhase.SUCCESS:
            return state.result_url
        if state.phase == JobPhase.FAIL:
            logger.error("Task %s failed: %s", task_id, state.failure_reason)
            raise GenerationFailed(state.failure_reason, details=state.failure_reason, task_id=task_id)
        if state.phase == JobPhase.MALFORMED:
            logger.error("Task %s reported success without a usable result: %s", task_id, state.failure_reason)
            raise MalformedSuccessResponse(state.failure_reason, task_id=task_id)
        logger.error("Task %s did not finish within %d polls", task_id, self.max_attempts)
        raise GenerationTimeout(
            f"Image generation timed out after {state.attempts} status checks", task_id=task_id
        )
