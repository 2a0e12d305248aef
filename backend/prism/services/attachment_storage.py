from __future__ import annotations

import base64
import hashlib
import math
import shutil
from pathlib import Path
from typing import Any

from prism.config import settings


class AttachmentTooLarge(ValueError):
    pass


def storage_root() -> Path:
    """Return the absolute storage root for this backend instance."""

    root = Path(settings.storage_dir)
    if root.is_absolute():
        return root

    # backend/prism/services/... -> backend/
    backend_root = Path(__file__).resolve().parents[2]
    return (backend_root / root).resolve()


def max_attachment_bytes() -> int:
    return int(settings.max_attachment_mb) * 1024 * 1024


def validate_attachment_size(size: int) -> None:
    if size <= 0:
        raise ValueError("Attachment is empty")
    if size > max_attachment_bytes():
        raise AttachmentTooLarge(
            f"Attachment exceeds the {settings.max_attachment_mb} MB limit ({format_file_size(size)})"
        )


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"

    units = ["Bytes", "KB", "MB", "GB", "TB"]
    i = min(int(math.floor(math.log(size) / math.log(1024))), len(units) - 1)
    value = math.floor(size / (1024**i) * 100 + 0.5) / 100
    text = str(int(value)) if value.is_integer() else str(value)
    return f"{text} {units[i]}"


def file_icon(mime: str) -> str:
    mime = mime or ""
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    if mime.startswith("audio/"):
        return "audio"
    if "pdf" in mime:
        return "pdf"
    if "word" in mime or "document" in mime:
        return "document"
    if "sheet" in mime or "excel" in mime:
        return "spreadsheet"
    if "presentation" in mime or "powerpoint" in mime:
        return "presentation"
    if "zip" in mime or "rar" in mime or "7z" in mime:
        return "archive"
    if "text/" in mime:
        return "text"
    return "file"


def _draft_dir(draft_uuid: str) -> Path:
    root = storage_root()
    target_dir = (root / "draft_attachments" / draft_uuid).resolve()
    if not target_dir.is_relative_to(root.resolve()):
        raise ValueError("Invalid draft id")
    return target_dir


def write_draft_attachment_bytes(
    *,
    draft_uuid: str,
    attachment_id: str,
    filename: str,
    content: bytes,
    content_type: str,
) -> dict[str, Any]:
    """Stage a draft attachment on local storage until the deal is submitted.

    Files are written atomically (tmp -> replace) under
    ``draft_attachments/<draft>/<attachment>/<name>``.
    """

    validate_attachment_size(len(content))

    target_dir = (_draft_dir(draft_uuid) / attachment_id).resolve()
    target_dir.mkdir(parents=True, exist_ok=True)

    safe_name = Path(filename or "").name or "attachment.bin"
    target_path = (target_dir / safe_name).resolve()
    if not target_path.is_relative_to(target_dir):
        raise ValueError("Invalid attachment path")

    tmp_path = target_path.with_suffix(target_path.suffix + ".tmp")
    tmp_path.write_bytes(content)
    tmp_path.replace(target_path)

    return {
        "file_name": safe_name,
        "file_type": content_type or "application/octet-stream",
        "file_size": len(content),
        "checksum": f"sha256:{hashlib.sha256(content).hexdigest()}",
        "storage_uri": f"file://{target_path.as_posix()}",
    }


def resolve_local_path_from_storage_uri(storage_uri: str) -> Path:
    if not storage_uri.startswith("file://"):
        raise ValueError("Unsupported storage_uri")

    p = Path(storage_uri[len("file://") :])

    # Require it to be under storage_root() to prevent path traversal.
    root = storage_root().resolve()
    resolved = p.resolve()
    if not resolved.is_relative_to(root):
        raise ValueError("Invalid storage_uri path")

    return resolved


def read_attachment_base64(storage_uri: str) -> str:
    return base64.b64encode(resolve_local_path_from_storage_uri(storage_uri).read_bytes()).decode("ascii")


def delete_attachment_file(storage_uri: str) -> None:
    path = resolve_local_path_from_storage_uri(storage_uri)
    path.unlink(missing_ok=True)
    parent = path.parent
    if parent.exists() and not any(parent.iterdir()):
        parent.rmdir()


def delete_draft_attachments(draft_uuid: str) -> None:
    shutil.rmtree(_draft_dir(draft_uuid), ignore_errors=True)
