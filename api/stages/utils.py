import re
import time
import uuid
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Optional

from fastapi import UploadFile

from .config import settings
from .errors import ValidationError

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")

_CONTENT_TYPES = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "txt": "text/plain",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite renvoie des datetimes naïfs : on les considère en UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def clean_filename(filename: Optional[str]) -> str:
    name = PurePosixPath(filename or "document").name or "document"
    return _UNSAFE_CHARS.sub("_", name)


def build_storage_path(owner_id: str, filename: Optional[str]) -> str:
    """Chemin unique par utilisateur : <owner_id>/<timestamp ms>_<suffixe>_<nom nettoyé>."""
    timestamp = int(time.time() * 1000)
    return f"{owner_id}/{timestamp}_{uuid.uuid4().hex[:8]}_{clean_filename(filename)}"


def guess_content_type(filename: Optional[str]) -> str:
    ext = (filename or "").lower().rsplit(".", 1)[-1]
    return _CONTENT_TYPES.get(ext, "application/octet-stream")


async def read_upload_validated(file: UploadFile) -> bytes:
    """
    Lit le fichier envoyé par morceaux en imposant la taille maximale
    (MAX_UPLOAD_MB). Refuse les fichiers vides.
    """
    max_bytes = int(settings.MAX_UPLOAD_MB) * 1024 * 1024
    chunks = []
    total = 0

    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            raise ValidationError(
                f"Fichier trop volumineux (max {settings.MAX_UPLOAD_MB}MB)",
                field="file",
            )
        chunks.append(chunk)

    if total == 0:
        raise ValidationError("Aucun fichier fourni", field="file")

    return b"".join(chunks)
