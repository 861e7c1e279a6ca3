"""Helpers that turn heterogeneous image payloads into ``ImageData``."""

from __future__ import annotations

import base64
import binascii
import io
import re

from PIL import Image, UnidentifiedImageError

from mangamachine.core.exceptions import InvalidImageError
from mangamachine.orchestration.models import ImageData, ReferenceCategory, ReferenceImage

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w=-]+)*;base64,(?P<payload>.*)$", re.DOTALL)


def sniff_mime_type(data: bytes) -> str:
    """Return the MIME type of an encoded image, raising if it is not one."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidImageError(f"payload is not a readable image: {exc}") from exc
    mime = Image.MIME.get(fmt or "")
    if not mime:
        raise InvalidImageError(f"unsupported image format: {fmt}")
    return mime


def decode_base64_image(payload: str, mime_type: str | None = None) -> ImageData:
    """Decode a bare base64 string or a ``data:`` URL."""
    match = _DATA_URL_RE.match(payload.strip())
    if match:
        mime_type = mime_type or match.group("mime")
        payload = match.group("payload")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidImageError(f"invalid base64 image payload: {exc}") from exc
    if not data:
        raise InvalidImageError("empty image payload")
    sniffed = sniff_mime_type(data)
    return ImageData(data=data, mime_type=mime_type or sniffed)


def image_from_bytes(data: bytes, mime_type: str | None = None) -> ImageData:
    if not data:
        raise InvalidImageError("empty image payload")
    if not mime_type or not mime_type.startswith("image/"):
        mime_type = sniff_mime_type(data)
    return ImageData(data=data, mime_type=mime_type)


def is_remote_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def reference_from_source(
    source: str,
    category: ReferenceCategory,
    *,
    name: str = "",
    ref_id: str = "",
) -> ReferenceImage:
    """Build a reference from a data URL, a bare base64 payload, or a remote URL."""
    if is_remote_url(source):
        return ReferenceImage(category=category, name=name, url=source, ref_id=ref_id)
    return ReferenceImage(category=category, name=name, image=decode_base64_image(source), ref_id=ref_id)
