import logging
import uuid
from typing import Dict, Iterable, List, Optional

from django.db import DatabaseError
from django.db.models import Q

from .errors import DataStoreError
from .models import CategorySystemPrompt, EnhancementTemplate
from .sanitizer import sanitize_free_text
from .schemas import AssembledPrompt

logger = logging.getLogger(__name__)

FALLBACK_TEMPLATE = "Apply {name} enhancement professionally for e-commerce product photography."

MULTI_HEADER = "Apply the following enhancements to this image:"
MULTI_FOOTER = "Ensure all enhancements work together harmoniously and create a cohesive final result."

CUSTOM_TEXT_TEMPLATES = {
    "custom_furniture": "Custom furniture request: {value}",
    "custom_pose": "Custom pose request: {value}",
    "custom_prompt": "Custom styling request: {value}",
    "custom_makeup": "Custom makeup details: {value}",
    "custom_hair_color": (
        "IMPORTANT: Change the hair color to {value}. The hair must be dyed/colored to {value}. "
        "Apply {value} hair color throughout all the hair."
    ),
}


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def lookup_template(identifier: str) -> Optional[EnhancementTemplate]:
    """Find the active template for an id, enhancement type or display name."""
    active = EnhancementTemplate.objects.filter(is_active=True)
    if _is_uuid(identifier):
        return active.filter(pk=identifier).first()
    return (
        active.filter(enhancement_type=identifier).first()
        or active.filter(display_name=identifier).first()
    )


def lookup_system_preamble(category_label: Optional[str]) -> str:
    if not category_label:
        return ""
    category = (
        CategorySystemPrompt.objects
        .filter(is_active=True)
        .filter(Q(category_code__iexact=category_label) | Q(category_name__iexact=category_label))
        .first()
    )
    if category and category.system_prompt:
        logger.info("Using system prompt for category: %s", category.category_name)
        return category.system_prompt
    logger.info("No system prompt found for category: %s", category_label)
    return ""


def combine_parts(parts: List[str]) -> str:
    if len(parts) == 1:
        return parts[0]
    numbered = "\n\n".join(f"{i}. {part}" for i, part in enumerate(parts, start=1))
    return f"{MULTI_HEADER}\n\n{numbered}\n\n{MULTI_FOOTER}"


def custom_text_parts(custom_text: Optional[Dict[str, str]]) -> List[str]:
    parts = []
    for name, template in CUSTOM_TEXT_TEMPLATES.items():
        value = sanitize_free_text((custom_text or {}).get(name))
        if value:
            parts.append(template.format(value=value))
    return parts


def assemble_prompt(
    enhancement_ids: Iterable[str],
    category_label: Optional[str] = None,
    custom_text: Optional[Dict[str, str]] = None,
) -> AssembledPrompt:
    """
    Build the instruction text for the selected enhancements.
    Caller order is kept; a missing template degrades to a generic sentence.
    Any data store failure is fatal, a partial prompt is never returned.
    """
    titles = []
    parts = []
    try:
        for identifier in enhancement_ids:
            template = lookup_template(identifier)
            if template:
                titles.append(template.display_name)
                parts.append(template.prompt_template)
            else:
                logger.warning("No active template for enhancement %r, using fallback prompt", identifier)
                titles.append(identifier)
                parts.append(FALLBACK_TEMPLATE.format(name=identifier))
        preamble = lookup_system_preamble(category_label)
    except DatabaseError as e:
        raise DataStoreError("Failed to load enhancement prompts", details=str(e)) from e

    parts.extend(custom_text_parts(custom_text))

    text = combine_parts(parts)
    if preamble:
        text = f"{preamble}\n\n{text}"
    return AssembledPrompt(text=text, titles=tuple(titles))
