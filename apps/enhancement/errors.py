"""
Error taxonomy for the generation pipeline.

Every fatal failure is a GenerationError carrying the string and HTTP status
the API reports. Bookkeeping failures after a successful generation are not
errors: they travel as PersistenceWarning values inside the outcome.
"""
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


class GenerationError(Exception):
    error = "generation error"
    http_status = 500

    def __init__(self, message: str = "", details: Any = None, task_id: Optional[str] = None):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details = details
        self.task_id = task_id

    def to_dict(self) -> Dict[str, Any]:
        data = {"error": self.error}
        if self.details is not None:
            data["details"] = self.details
        elif self.message != self.error:
            data["details"] = self.message
        if self.task_id:
            data["taskId"] = self.task_id
        return data


class ValidationError(GenerationError):
    error = "invalid request"
    http_status = 400


class AuthenticationRequired(GenerationError):
    error = "authentication required"
    http_status = 401


class QuotaExceeded(GenerationError):
    error = "quota exceeded"
    http_status = 403

    def __init__(self, current: int, limit: int):
        super().__init__(f"Monthly generation quota exceeded ({current}/{limit})")
        self.current = current
        self.limit = limit

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "current": self.current, "limit": self.limit}


class UpstreamRateLimited(GenerationError):
    error = "rate limited"
    http_status = 429


class UpstreamQuotaExhausted(GenerationError):
    error = "upstream quota exhausted"
    http_status = 503


class SubmissionFailed(GenerationError):
    error = "submission failed"
    http_status = 502


class MalformedSuccessResponse(GenerationError):
    error = "malformed success response"
    http_status = 502


class GenerationFailed(GenerationError):
    error = "generation failed"
    http_status = 502


class GenerationTimeout(GenerationError):
    error = "generation timed out"
    http_status = 504


class DataStoreError(GenerationError):
    error = "data store unavailable"
    http_status = 503


class PollInProgress(GenerationError):
    error = "poll in progress"
    http_status = 409


@dataclass(frozen=True)
class PersistenceWarning:
    stage: str  # "storage", "history" or "quota"
    message: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)
