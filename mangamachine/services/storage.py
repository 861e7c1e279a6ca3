import json
import os
import re
import uuid
from typing import Any, Mapping

from mangamachine.orchestration.models import ImageData

_SAFE_SEGMENT_RE = re.compile(r"[^A-Za-z0-9_.-]+")


def _ext_from_mime(mime_type: str) -> str:
    mime = (mime_type or "").lower()
    if mime == "image/png":
        return ".png"
    if mime in {"image/jpeg", "image/jpg"}:
        return ".jpg"
    if mime == "image/webp":
        return ".webp"
    return ".bin"


def _safe_segment(value: str) -> str:
    cleaned = _SAFE_SEGMENT_RE.sub("-", value).strip(".-")
    if not cleaned:
        raise ValueError(f"invalid storage path segment: {value!r}")
    return cleaned


class LocalMediaStore:
    """Filesystem artifact store served by the app under ``url_prefix``."""

    def __init__(self, root_dir: str, url_prefix: str):
        self.root_dir = root_dir
        self.url_prefix = url_prefix.rstrip("/")

    def save_image_bytes(self, image_bytes: bytes, mime_type: str, subdir: str | None = None) -> tuple[str, str]:
        target_dir = os.path.join(self.root_dir, subdir) if subdir else self.root_dir
        os.makedirs(target_dir, exist_ok=True)

        file_id = str(uuid.uuid4())
        ext = _ext_from_mime(mime_type)
        filename = f"{file_id}{ext}"
        file_path = os.path.join(target_dir, filename)

        with open(file_path, "wb") as f:
            f.write(image_bytes)

        relative = f"{subdir}/{filename}" if subdir else filename
        url = f"{self.url_prefix}/{relative}"
        return file_path, url

    def save_artifact(
        self,
        project_id: str,
        sequence_number: int,
        image: ImageData,
        metadata: Mapping[str, Any] | None = None,
    ) -> str:
        """Write one panel image plus a JSON sidecar and return its public URL."""
        subdir = _safe_segment(project_id)
        file_path, url = self.save_image_bytes(image.data, image.mime_type, subdir=subdir)

        sidecar = {
            "project_id": project_id,
            "sequence_number": sequence_number,
            "mime_type": image.mime_type,
            "size_bytes": image.size_bytes,
            "url": url,
            **dict(metadata or {}),
        }
        with open(f"{os.path.splitext(file_path)[0]}.json", "w", encoding="utf-8") as f:
            json.dump(sidecar, f, ensure_ascii=False, indent=2)
        return url
