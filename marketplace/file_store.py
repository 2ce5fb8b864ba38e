# marketplace/file_store.py
import io
import logging
import time
from typing import Callable
from uuid import uuid4

from PIL import Image, UnidentifiedImageError
from sqlalchemy.orm import Session

from marketplace import settings
from marketplace.entities import StoredFile
from marketplace.errors import BadRequest

logger = logging.getLogger("adspace_backend")


def compress_image(data: bytes, max_width: int = settings.IMAGE_MAX_WIDTH,
                   quality: int = settings.IMAGE_JPEG_QUALITY) -> bytes:
    """
    Downscale to max_width (aspect ratio kept) and re-encode as JPEG.
    Images narrower than max_width are only re-encoded.
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError):
        raise BadRequest("Error uploading images: not a valid image file")

    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")

    if img.width > max_width:
        height = max(1, round(img.height * max_width / img.width))
        img = img.resize((max_width, height), Image.LANCZOS)

    out = io.BytesIO()
    img.save(out, format="JPEG", quality=quality)
    return out.getvalue()


class DatabaseFileStore:
    """Blobs in the stored_file table."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.SessionFactory = session_factory

    def put(self, filename: str, data: bytes, content_type: str) -> str:
        session = self.SessionFactory()
        try:
            row = StoredFile(filename=filename, content_type=content_type, data=data)
            session.add(row)
            session.commit()
            return row.id
        finally:
            session.close()

    def get(self, file_id: str) -> tuple[bytes, str] | None:
        session = self.SessionFactory()
        try:
            row = session.get(StoredFile, str(file_id))
            if row is None:
                return None
            return row.data, row.content_type
        finally:
            session.close()

    def delete(self, file_id: str) -> None:
        session = self.SessionFactory()
        try:
            row = session.get(StoredFile, str(file_id))
            if row is not None:
                session.delete(row)
                session.commit()
        finally:
            session.close()


class GcsFileStore:
    """Blobs in a Google Cloud Storage bucket, keyed by file id."""

    def __init__(self, connection, bucket_name: str, prefix: str = "uploads") -> None:
        self.connection = connection
        self.bucket_name = bucket_name
        self.prefix = prefix

    def _path(self, file_id: str) -> str:
        return f"{self.prefix}/{file_id}"

    def put(self, filename: str, data: bytes, content_type: str) -> str:
        file_id = str(uuid4())
        self.connection.upload_to_gcs(self.bucket_name, self._path(file_id), data, content_type=content_type)
        logger.debug("Stored %s as gs://%s/%s", filename, self.bucket_name, self._path(file_id))
        return file_id

    def get(self, file_id: str) -> tuple[bytes, str] | None:
        return self.connection.download_from_gcs(self.bucket_name, self._path(file_id))

    def delete(self, file_id: str) -> None:
        self.connection.delete_from_gcs(self.bucket_name, self._path(file_id))


class MediaService:
    def __init__(self, store) -> None:
        self.store = store

    def save_image(self, original_name: str, data: bytes) -> str:
        return self.save_images([(original_name, data)])[0]

    def save_images(self, uploads: list[tuple[str, bytes]]) -> list[str]:
        """
        All-or-nothing: every upload is compressed before the first one is
        stored, and a failed put removes the files already written.
        """
        compressed = [(name, compress_image(data)) for name, data in uploads]
        stamp = int(time.time() * 1000)
        stored: list[str] = []
        try:
            for name, data in compressed:
                stored.append(self.store.put(f"{stamp}-{name or 'image'}", data, "image/jpeg"))
        except Exception:
            self.delete_many(stored)
            raise
        return stored

    def save_attachment(self, original_name: str, data: bytes, content_type: str | None) -> dict:
        if not data:
            raise BadRequest("File upload failed")
        content_type = content_type or "application/octet-stream"
        file_id = self.store.put(original_name or "attachment", data, content_type)
        return {
            "fileId": file_id,
            "filename": original_name,
            "type": "image" if content_type.startswith("image/") else "file",
        }

    def open(self, file_id: str) -> tuple[bytes, str] | None:
        return self.store.get(file_id)

    def delete_many(self, file_ids) -> None:
        for file_id in file_ids:
            if file_id:
                self.store.delete(file_id)


def build_file_store(session_factory, connection=None, bucket_name: str = ""):
    if bucket_name and connection is not None:
        logger.info("File store: gs://%s", bucket_name)
        return GcsFileStore(connection, bucket_name)
    logger.info("File store: database")
    return DatabaseFileStore(session_factory)
