# api/stages/storage.py
from pathlib import Path
from typing import Protocol

from .config import settings
from .errors import BlobNotFound, StorageError


class BlobStore(Protocol):
    def put(self, path: str, data: bytes) -> None: ...

    def get(self, path: str) -> bytes: ...

    def remove(self, path: str) -> None: ...


class LocalBlobStore:
    """
    Stockage des fichiers sur disque, sous un répertoire racine.
    Les chemins sont des clés opaques du type "<user_id>/<fichier>".
    """

    def __init__(self, root: str):
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        if not path or path.startswith("/"):
            raise StorageError(f"Chemin de stockage invalide: {path!r}")
        target = (self.root / path).resolve()
        if self.root not in target.parents:
            raise StorageError(f"Chemin de stockage invalide: {path!r}")
        return target

    def put(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        if target.exists():
            raise StorageError(f"Fichier déjà présent: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Écriture impossible: {e}") from e

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise BlobNotFound(path)
        try:
            return target.read_bytes()
        except OSError as e:
            raise StorageError(f"Lecture impossible: {e}") from e

    def remove(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Suppression impossible: {e}") from e


def get_blob_store() -> BlobStore:
    return LocalBlobStore(settings.UPLOAD_DIR)
