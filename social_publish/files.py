"""Uploaded images: bytes on disk, metadata as ``upload`` documents."""

from __future__ import annotations

import hashlib
import json
import logging
import struct
import uuid as uuid_lib
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from social_publish.errors import CaughtException, NotFound, ValidationError
from social_publish.models import ImageRef
from social_publish.store import DocumentStore, StorageError, Tag

logger = logging.getLogger(__name__)

UPLOAD_KIND = "upload"
UPLOAD_NAMESPACE = uuid_lib.UUID("5b9ba0d0-8825-4c51-a34e-f849613dbcac")

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
JPEG_SIGNATURE = b"\xff\xd8\xff"


@dataclass
class Upload:
    uuid: str
    hash: str
    originalname: str
    mimetype: str
    size: int
    alt_text: str | None = None
    image_width: int | None = None
    image_height: int | None = None
    created_at: datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "originalname": self.originalname,
            "mimetype": self.mimetype,
            "size": self.size,
            "altText": self.alt_text,
            "imageWidth": self.image_width,
            "imageHeight": self.image_height,
        }


def detect_mimetype(content: bytes) -> str | None:
    if content.startswith(PNG_SIGNATURE):
        return "image/png"
    if content.startswith(JPEG_SIGNATURE):
        return "image/jpeg"
    return None


def png_dimensions(content: bytes) -> tuple[int, int] | None:
    """Width and height from the IHDR chunk, or None if it is not a PNG."""
    if not content.startswith(PNG_SIGNATURE) or len(content) < 24:
        return None
    width, height = struct.unpack(">II", content[16:24])
    return width, height


def upload_search_key(
    content_hash: str,
    originalname: str,
    mimetype: str,
    alt_text: str | None = None,
    width: int | None = None,
    height: int | None = None,
) -> str:
    """Deterministic key so re-uploading identical content and metadata is a no-op."""
    name = "/".join([
        f"h:{content_hash}",
        f"n:{originalname}",
        f"a:{alt_text or ''}",
        f"w:{width if width is not None else ''}",
        f"h:{height if height is not None else ''}",
        f"m:{mimetype}",
    ])
    return f"{UPLOAD_KIND}:{uuid_lib.uuid5(UPLOAD_NAMESPACE, name)}"


class FileStore:
    """Saves image bytes under ``uploads_path`` and resolves them for adapters."""

    def __init__(self, store: DocumentStore, uploads_path: Path | str, base_url: str) -> None:
        self._store = store
        self._root = Path(uploads_path)
        self._base_url = base_url.rstrip("/")

    def save(
        self,
        content: bytes,
        filename: str,
        alt_text: str | None = None,
        width: int | None = None,
        height: int | None = None,
    ) -> Upload:
        mimetype = detect_mimetype(content)
        if mimetype is None:
            raise ValidationError(
                "Only PNG and JPEG images are supported", module="files",
            )
        if width is None and height is None:
            dims = png_dimensions(content)
            if dims is not None:
                width, height = dims

        content_hash = hashlib.sha256(content).hexdigest()
        upload = Upload(
            uuid="",
            hash=content_hash,
            originalname=filename,
            mimetype=mimetype,
            size=len(content),
            alt_text=alt_text,
            image_width=width,
            image_height=height,
        )
        key = upload_search_key(content_hash, filename, mimetype, alt_text, width, height)
        try:
            existing = self._store.search_by_key(key)
            if existing is not None:
                return self._to_upload(existing.uuid, existing.payload, existing.created_at)

            self._root.mkdir(parents=True, exist_ok=True)
            (self._root / content_hash).write_bytes(content)
            doc = self._store.create_or_update(
                kind=UPLOAD_KIND,
                payload=json.dumps(upload.to_payload()),
                search_key=key,
                tags=[Tag(mimetype, "mimetype")],
            )
        except (StorageError, OSError) as exc:
            logger.exception("Failed to save upload %s", filename)
            raise CaughtException(f"Failed to save upload: {exc}", module="files") from exc

        logger.info("File uploaded: %s (%s)", doc.uuid, filename)
        upload.uuid = doc.uuid
        upload.created_at = doc.created_at
        return upload

    def get(self, uuid: str) -> Upload | None:
        try:
            doc = self._store.search_by_uuid(uuid)
        except StorageError as exc:
            logger.exception("Failed to read upload %s", uuid)
            raise CaughtException(f"Failed to read upload: {exc}", module="files") from exc
        if doc is None or doc.kind != UPLOAD_KIND:
            return None
        return self._to_upload(doc.uuid, doc.payload, doc.created_at)

    def read_bytes(self, upload: Upload) -> bytes:
        path = self._root / upload.hash
        if not path.exists():
            raise NotFound(f"File content not found: {upload.uuid}", module="files")
        return path.read_bytes()

    def resolve_image_url(self, uuid: str) -> str:
        return f"{self._base_url}/files/{uuid}"

    def resolve_image(self, uuid: str) -> ImageRef:
        upload = self.get(uuid)
        if upload is None:
            raise NotFound(f"Upload not found: {uuid}", module="files")
        return ImageRef(
            uuid=upload.uuid,
            url=self.resolve_image_url(upload.uuid),
            mimetype=upload.mimetype,
            path=self._root / upload.hash,
            filename=upload.originalname,
            alt_text=upload.alt_text,
            width=upload.image_width,
            height=upload.image_height,
            size=upload.size,
            reader=lambda: self.read_bytes(upload),
        )

    @staticmethod
    def _to_upload(uuid: str, payload: str, created_at: datetime) -> Upload:
        data = json.loads(payload)
        return Upload(
            uuid=uuid,
            hash=data["hash"],
            originalname=data["originalname"],
            mimetype=data["mimetype"],
            size=int(data.get("size", 0)),
            alt_text=data.get("altText"),
            image_width=data.get("imageWidth"),
            image_height=data.get("imageHeight"),
            created_at=created_at,
        )
