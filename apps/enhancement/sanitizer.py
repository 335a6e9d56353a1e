import re
from typing import Optional

MAX_FREE_TEXT_CHARS = 500

SCRIPT_PATTERNS = [
    r"\bscript\b",
    r"\beval\b",
    r"\bfunction\b",
    r"\bexec\b",
    r"\bsystem\b",
    r"\bcmd\b",
    r"\bbash\b",
    r"\bsh\b",
]

_TAG_RE = re.compile(r"<[^>]*>")
_UNSAFE_CHARS_RE = re.compile(r"[<>\"'`\x00]")
_WHITESPACE_RE = re.compile(r"\s+")


def sanitize_free_text(text: Optional[str], max_length: int = MAX_FREE_TEXT_CHARS) -> str:
    """Clean user free text before it is spliced into a provider prompt."""
    if not text:
        return ""

    cleaned = text
    for pattern in SCRIPT_PATTERNS:
        cleaned = re.sub(pattern, "", cleaned, flags=re.IGNORECASE)
    cleaned = _TAG_RE.sub("", cleaned)
    cleaned = _UNSAFE_CHARS_RE.sub("", cleaned)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
    return cleaned[:max_length]


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    email = email.strip().lower()
    return email or None
