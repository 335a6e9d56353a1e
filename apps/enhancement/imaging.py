from PIL import Image, UnidentifiedImageError
import base64
import binascii
import io
from django.conf import settings


class InvalidImage(ValueError):
    pass


def decode_data_uri(uri: str) -> bytes:
    """Decode a base64 ``data:`` URI into raw bytes."""
    header, _, payload = uri.partition(",")
    if not header.startswith("data:") or ";base64" not in header:
        raise InvalidImage("Unsupported data URI")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImage(f"Invalid base64 payload: {e}") from e


def ensure_png(image_bytes: bytes) -> bytes:
    """Check result size and decodability; return PNG bytes."""

    if len(image_bytes) > settings.GENERATION_MAX_RESULT_BYTES:
        raise InvalidImage("Generated image too large")

    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImage(f"Generated result is not an image: {e}") from e

    if img.format == "PNG":
        return image_bytes

    # Provider sometimes answers with JPEG/WebP; stored results are always PNG
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
