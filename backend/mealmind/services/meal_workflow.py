"""
Meal creation workflow.

Stores the uploaded images in object storage, then writes the meal row and
one photo row per image in a single transaction. Storage writes cannot be
rolled back with the transaction, so on failure the objects uploaded by the
same call are deleted best-effort; anything that survives that is an orphan
and is logged.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Sequence
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mealmind.core.exceptions import PersistenceError, StorageError, ValidationError
from mealmind.repositories.meal_repository import MealRepository
from mealmind.repositories.photo_repository import PhotoRepository
from mealmind.storage.object_storage import ObjectStorageClient

logger = logging.getLogger(__name__)

EXTENSIONS_BY_CONTENT_TYPE = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/heic": "heic",
}
DEFAULT_EXTENSION = "bin"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class ImageUpload:
    data: bytes
    content_type: str = DEFAULT_CONTENT_TYPE


@dataclass(frozen=True)
class CreatedMeal:
    id: UUID
    created_at: datetime
    photo_ids: List[UUID]


def extension_for(content_type: str) -> str:
    """Map a declared content type (parameters ignored) to a file extension"""
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    return EXTENSIONS_BY_CONTENT_TYPE.get(media_type, DEFAULT_EXTENSION)


def photo_storage_key(owner_id: UUID, meal_id: UUID, photo_id: UUID, content_type: str) -> str:
    return f"meals/{owner_id}/{meal_id}-{photo_id}.{extension_for(content_type)}"


class MealCreationWorkflow:
    def __init__(self, storage: ObjectStorageClient):
        self.storage = storage

    def create(self, db: Session, owner_id: UUID, images: Sequence[ImageUpload]) -> CreatedMeal:
        """
        Create a meal owned by owner_id with one photo per image.

        Images are uploaded sequentially in submission order and the returned
        photo ids follow that order. Raises ValidationError for an empty list,
        StorageError if an upload fails (nothing is written to the database)
        and PersistenceError if the transaction fails.
        """
        # Nothing is uploaded or written for an empty request
        if not images:
            raise ValidationError("no images provided")

        # The meal id exists before the row so storage keys can embed it
        meal_id = uuid4()
        uploaded = []  # (photo_id, key) in submission order
        for image in images:
            photo_id = uuid4()
            key = photo_storage_key(owner_id, meal_id, photo_id, image.content_type)
            try:
                self.storage.put_object(key, image.data, image.content_type)
            except StorageError:
                logger.exception("Upload failed for meal %s after %d of %d images", meal_id, len(uploaded), len(images))
                self._discard([k for _, k in uploaded])
                raise
            uploaded.append((photo_id, key))

        # Shared by the meal and its photos; position orders photos within it
        created_at = datetime.now(timezone.utc)
        meals = MealRepository(db)
        photos = PhotoRepository(db)
        try:
            meals.add(meal_id, owner_id, created_at)
            # Photos must reference an existing meal row under the FK
            db.flush()
            for position, (photo_id, key) in enumerate(uploaded):
                photos.add(photo_id, meal_id, key, position, created_at)
            db.commit()
        except SQLAlchemyError as e:
            # Neither the meal nor any photo row survives a failed commit
            db.rollback()
            logger.error("Transaction failed for meal %s: %s", meal_id, e)
            self._discard([k for _, k in uploaded])
            raise PersistenceError() from e

        logger.info("Meal %s created for user %s with %d photos", meal_id, owner_id, len(uploaded))
        return CreatedMeal(id=meal_id, created_at=created_at, photo_ids=[photo_id for photo_id, _ in uploaded])

    def presign(self, key: str, ttl_seconds: int) -> str:
        """Time-limited read URL for a stored photo; StorageError propagates"""
        return self.storage.presign_get(key, ttl_seconds)

    def _discard(self, keys: List[str]) -> None:
        for key in keys:
            try:
                self.storage.delete_object(key)
            except StorageError:
                logger.error("Could not delete %s; object is orphaned", key)
