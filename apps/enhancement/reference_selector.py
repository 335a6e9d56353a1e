"""
Decide whether an enhancement shows the product on a person, and if so which
stock model photo is composited in as the second provider image.

All routing is table driven: each table is an ordered list of
(label, keywords) evaluated by first match, so priorities live in the data.
Vocabulary covers the English and Indonesian enhancement titles in use.
"""
import logging
import re
from functools import lru_cache
from typing import Mapping, Optional, Sequence, Tuple

from django.conf import settings

from .schemas import ReferenceImageSet, WatermarkSpec

logger = logging.getLogger(__name__)

WEARABLE_KEYWORDS = (
    # On-body display
    "model", "worn", "wearing", "on-feet", "on feet", "on-body", "lifestyle", "mannequin", "manekin",
    "dipakai", "saat dipakai", "bagian tubuh",
    # Head coverings are only shown worn
    "hijab", "berhijab", "jilbab", "kerudung",
    # Neck, wrist and hand placements
    "neck", "leher", "wrist", "pergelangan", "hand", "tangan",
)

MODEL_VARIANTS = (
    ("female_hijab", ("hijab", "berhijab", "jilbab", "kerudung")),
    ("female", ("female", "woman", "women", "wanita", "perempuan", "cewek", "girl")),
    ("male", ("male", "man", "men", "pria", "laki-laki", "cowok", "boy")),
)
DEFAULT_MODEL_VARIANT = "female"

MODEL_VARIANT_LABELS = {
    "female_hijab": "female with hijab",
    "female": "female",
    "male": "male",
}

PRODUCT_TYPES = (
    ("t-shirt", ("t-shirt", "tshirt")),
    ("shirt", ("shirt", "kaos", "baju", "blouse", "polo", "tunic")),
    ("dress", ("dress", "gaun", "gown")),
    ("jacket", ("jacket", "jaket", "blazer", "hoodie", "coat")),
    ("pants", ("pants", "celana", "trousers", "jean", "legging")),
    ("skirt", ("skirt", "rok")),
    ("shoes", ("shoe", "sepatu", "sneaker", "boot", "sandal", "heel")),
    ("bag", ("bag", "tas", "handbag", "backpack", "purse")),
    ("watch", ("watch", "jam tangan")),
    ("necklace", ("necklace", "kalung")),
    ("bracelet", ("bracelet", "gelang")),
    ("ring", ("ring", "cincin")),
    ("earrings", ("earring", "anting")),
    ("hat", ("hat", "topi")),
    ("sunglasses", ("sunglasses", "kacamata")),
)
DEFAULT_PRODUCT_TYPE = "clothing"

WATERMARK_TEXT_INSTRUCTION = (
    ' Add a subtle watermark text "{text}" in the {position} corner of the image. '
    "Make it semi-transparent (about 30% opacity) and use a professional font."
)
WATERMARK_LOGO_INSTRUCTION = (
    " Add a small watermark logo in the {position} corner of the image. "
    "Make it semi-transparent (about 30% opacity). Logo reference: {logo}"
)
WATERMARK_REMOVAL_INSTRUCTION = (
    " Remove any existing watermarks, text overlays, logos, or branding from the image. "
    "Ensure the final image is clean without any text or logo elements."
)

COMPOSITE_TEMPLATE = (
    "Make the {product} from file 1 worn by the model from file 2. "
    "File 1 is the product photo and file 2 is the {model_label} model reference ({asset_name}). "
    "The model should use a natural professional pose like a fashion model to showcase the {product}. "
    "Keep the exact face, body, and appearance of the model from file 2. "
    "Preserve any text, logos, or branding that exists on the {product} from file 1 - do not remove or alter them. "
    "Use professional e-commerce photography style with clean background and studio lighting. "
    "The {product} should fit naturally on the model's body."
)


@lru_cache(maxsize=None)
def _keyword_pattern(keyword: str):
    # Word start, optional plural suffix, word end
    return re.compile(r"(?<![a-z0-9])" + re.escape(keyword) + r"(?:s|es)?(?![a-z0-9])")


def contains_keyword(text: str, keyword: str) -> bool:
    return _keyword_pattern(keyword).search(text) is not None


def first_match(text: str, table: Sequence[Tuple[str, Sequence[str]]], default: Optional[str] = None) -> Optional[str]:
    for label, keywords in table:
        if any(contains_keyword(text, keyword) for keyword in keywords):
            return label
    return default


def is_wearable(titles: str) -> bool:
    text = (titles or "").lower()
    return any(contains_keyword(text, keyword) for keyword in WEARABLE_KEYWORDS)


def select_model_variant(titles: str) -> str:
    return first_match((titles or "").lower(), MODEL_VARIANTS, DEFAULT_MODEL_VARIANT)


def infer_product_type(titles: str) -> str:
    return first_match((titles or "").lower(), PRODUCT_TYPES, DEFAULT_PRODUCT_TYPE)


def watermark_instruction(watermark: Optional[WatermarkSpec]) -> str:
    if watermark is None or not watermark.requested:
        return WATERMARK_REMOVAL_INSTRUCTION
    if watermark.kind == "text":
        return WATERMARK_TEXT_INSTRUCTION.format(text=watermark.text, position=watermark.position)
    return WATERMARK_LOGO_INSTRUCTION.format(logo=watermark.logo_ref, position=watermark.position)


def composite_prompt(product_type: str, model_variant: str, asset_url: str) -> str:
    return COMPOSITE_TEMPLATE.format(
        product=product_type,
        model_label=MODEL_VARIANT_LABELS.get(model_variant, model_variant),
        asset_name=asset_url.rsplit("/", 1)[-1],
    )


def select_references(
    prompt: str,
    titles: str,
    source_url: str,
    watermark: Optional[WatermarkSpec] = None,
    assets: Optional[Mapping[str, str]] = None,
) -> ReferenceImageSet:
    """
    Finalize the provider image list and prompt.

    Non-wearable titles keep the prompt and send only the source image.
    Wearable titles append one model asset as file 2 and replace the prompt
    with explicit file 1 / file 2 compositing instructions. The watermark
    instruction is appended last in both cases.
    """
    assets = assets if assets is not None else settings.MODEL_REFERENCE_ASSETS
    titles = (titles or "").lower()

    if not is_wearable(titles):
        return ReferenceImageSet(
            urls=(source_url,),
            prompt=prompt + watermark_instruction(watermark),
        )

    variant = select_model_variant(titles)
    asset_url = assets[variant]
    product_type = infer_product_type(titles)
    logger.info("Adding %s model reference for %s", MODEL_VARIANT_LABELS[variant], product_type)

    return ReferenceImageSet(
        urls=(source_url, asset_url),
        prompt=composite_prompt(product_type, variant, asset_url) + watermark_instruction(watermark),
        model_variant=variant,
        needs_model=True,
        product_type=product_type,
    )
