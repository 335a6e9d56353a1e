import time
from typing import Optional, Tuple

from django.conf import settings
from django.core import signing
from django.urls import reverse

SIGNING_SALT = "pixelnova.media"

UPLOADS_STORAGE = "uploads"
GENERATED_STORAGE = "generated"


class SignedUrlExpired(signing.BadSignature):
    pass


def is_url(value: str) -> bool:
    return "://" in value or value.startswith("data:")


def result_key(caller_id: str, now: Optional[float] = None) -> str:
    millis = int((now if now is not None else time.time()) * 1000)
    return f"{caller_id}/{millis}-enhanced.png"


def sign_path(storage_alias: str, path: str, ttl: int, now: Optional[float] = None) -> str:
    expires = int((now if now is not None else time.time()) + ttl)
    return signing.dumps({"s": storage_alias, "p": path, "e": expires}, salt=SIGNING_SALT, compress=True)


def unsign_path(token: str, now: Optional[float] = None) -> Tuple[str, str]:
    """Return (storage alias, path) for a valid token; raise BadSignature otherwise."""
    data = signing.loads(token, salt=SIGNING_SALT)
    if data["e"] < (now if now is not None else time.time()):
        raise SignedUrlExpired("Signed URL expired")
    return data["s"], data["p"]


def signed_url(storage_alias: str, path: str, ttl: int) -> str:
    token = sign_path(storage_alias, path, ttl)
    return settings.PUBLIC_BASE_URL + reverse("signed-media", args=[token])


def resolve_source_url(source_image: str) -> str:
    """URLs pass through; bare storage paths get a short-lived signed URL."""
    if is_url(source_image):
        return source_image
    return signed_url(UPLOADS_STORAGE, source_image.lstrip("/"), settings.SOURCE_URL_TTL)
