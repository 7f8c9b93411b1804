"""Generated image persistence: server filesystem or browser-side storage."""

from __future__ import annotations

import base64
from dataclasses import dataclass
import logging
from pathlib import Path
import time
from typing import List, Optional
import uuid

from config import resolve_image_storage_mode, settings

logger = logging.getLogger(__name__)

VALID_OUTPUT_FORMATS = ("png", "jpeg", "webp")
IMAGE_MIME_BY_FORMAT = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
}


@dataclass(frozen=True)
class StoredImage:
    filename: str
    b64_json: str
    output_format: str
    path: Optional[str] = None


def normalize_output_format(value: Optional[str]) -> str:
    normalized = str(value or "png").strip().lower()
    if normalized == "jpg":
        normalized = "jpeg"
    return normalized if normalized in VALID_OUTPUT_FORMATS else "png"


def output_dir() -> Path:
    return Path(settings.IMAGE_OUTPUT_DIR).resolve()


def store_generated_images(
    images: List[bytes],
    output_format: Optional[str] = None,
    mode: Optional[str] = None,
) -> List[StoredImage]:
    """Name each image; write it to disk only in fs mode. Blocking: run in a thread."""
    storage_mode = mode or resolve_image_storage_mode()
    extension = normalize_output_format(output_format)
    target_dir = output_dir()
    if storage_mode == "fs":
        target_dir.mkdir(parents=True, exist_ok=True)

    timestamp = int(time.time() * 1000)
    token = uuid.uuid4().hex[:8]
    stored: List[StoredImage] = []
    for index, content in enumerate(images):
        filename = f"{timestamp}-{token}-{index}.{extension}"
        path = None
        if storage_mode == "fs":
            (target_dir / filename).write_bytes(content)
            path = f"/images/files/{filename}"
            logger.info("Saved generated image %s", filename)
        stored.append(
            StoredImage(
                filename=filename,
                b64_json=base64.b64encode(content).decode("utf-8"),
                output_format=extension,
                path=path,
            )
        )
    return stored


def resolve_stored_image(filename: str) -> Optional[Path]:
    """Return the on-disk path for a served filename, or None if absent or outside the output dir."""
    if not filename or "/" in filename or "\\" in filename or filename.startswith("."):
        return None
    root = output_dir()
    candidate = (root / filename).resolve()
    if candidate.parent != root or not candidate.is_file():
        return None
    return candidate
