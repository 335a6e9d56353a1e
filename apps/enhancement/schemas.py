from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any, Tuple

WATERMARK_KINDS = ("none", "text", "logo")
WATERMARK_POSITIONS = ("top-left", "top-right", "bottom-left", "bottom-right")

# Free-text request fields, in the order they are appended to the prompt
CUSTOM_TEXT_FIELDS = ("custom_furniture", "custom_pose", "custom_prompt", "custom_makeup", "custom_hair_color")


@dataclass(frozen=True)
class WatermarkSpec:
    kind: str = "none"  # "none", "text" or "logo"
    text: Optional[str] = None
    logo_ref: Optional[str] = None
    position: str = "top-right"

    @property
    def requested(self) -> bool:
        if self.kind == "text":
            return bool(self.text)
        if self.kind == "logo":
            return bool(self.logo_ref)
        return False


@dataclass(frozen=True)
class GenerationRequest:
    """Canonical shape of one "generate" call, built once at the API boundary."""
    source_image: str
    enhancement_ids: Tuple[str, ...]
    category_label: Optional[str] = None
    caller_id: Optional[str] = None
    caller_email: Optional[str] = None
    watermark: WatermarkSpec = field(default_factory=WatermarkSpec)
    custom_furniture: Optional[str] = None
    custom_pose: Optional[str] = None
    custom_prompt: Optional[str] = None
    custom_makeup: Optional[str] = None
    custom_hair_color: Optional[str] = None
    debug: bool = False

    @property
    def is_anonymous(self) -> bool:
        return not self.caller_id

    def custom_text(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in CUSTOM_TEXT_FIELDS if getattr(self, name)}

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["enhancement_ids"] = list(self.enhancement_ids)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationRequest":
        data = dict(data)
        data["enhancement_ids"] = tuple(data.get("enhancement_ids") or ())
        data["watermark"] = WatermarkSpec(**(data.get("watermark") or {}))
        return cls(**data)


@dataclass(frozen=True)
class AssembledPrompt:
    text: str
    titles: Tuple[str, ...] = ()

    @property
    def title_text(self) -> str:
        return " ".join(self.titles).lower()


@dataclass(frozen=True)
class ReferenceImageSet:
    urls: Tuple[str, ...]  # position 0 is the product, position 1 the model
    prompt: str
    model_variant: str = "none"
    needs_model: bool = False
    product_type: Optional[str] = None


@dataclass
class QuotaDecision:
    allowed: bool
    current: int = 0
    limit: Optional[int] = None
    email: Optional[str] = None
    anonymous: bool = False


@dataclass(frozen=True)
class PreparedGeneration:
    """Everything needed to submit a job, computed before any provider call."""
    request: GenerationRequest
    prompt: str
    image_urls: Tuple[str, ...]
    titles: Tuple[str, ...] = ()
    model_variant: str = "none"
    needs_model: bool = False

    @property
    def enhancement_label(self) -> str:
        return ", ".join(self.titles)


@dataclass
class PersistedResult:
    url: str
    storage_path: Optional[str] = None
    warnings: List[Any] = field(default_factory=list)


@dataclass
class GenerationOutcome:
    generated_image_url: str
    prompt_used: str
    task_id: Optional[str] = None
    storage_path: Optional[str] = None
    warnings: List[Any] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return {
            "generatedImageUrl": self.generated_image_url,
            "promptUsed": self.prompt_used,
            "taskId": self.task_id,
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass
class DebugPreview:
    payload: Dict[str, Any]
    image_urls: Tuple[str, ...]
    prompt: str
    model_variant: str = "none"
    needs_model: bool = False

    def to_response(self) -> Dict[str, Any]:
        return {
            "debugMode": True,
            "message": "Debug mode - API call skipped",
            "payload": self.payload,
            "imageUrls": list(self.image_urls),
            "prompt": self.prompt,
            "modelType": self.model_variant,
            "needsModel": self.needs_model,
        }
