import re
from uuid import UUID, uuid4

import pytest
from sqlalchemy.exc import OperationalError

from mealmind.core.exceptions import PersistenceError, StorageError, ValidationError
from mealmind.models.meal import Meal
from mealmind.models.photo import Photo
from mealmind.repositories.photo_repository import PhotoRepository
from mealmind.repositories.user_repository import UserRepository
from mealmind.services.meal_workflow import (
    ImageUpload,
    MealCreationWorkflow,
    extension_for,
    photo_storage_key,
)
from mealmind.storage.object_storage import InMemoryObjectStorage


class RecordingStorage(InMemoryObjectStorage):
    """In-memory storage that records calls and can fail the nth upload."""

    def __init__(self, fail_on_put=None, fail_on_delete=False):
        super().__init__("test-bucket")
        self.calls = []
        self.fail_on_put = fail_on_put
        self.fail_on_delete = fail_on_delete

    def put_object(self, key, data, content_type):
        self.calls.append(("put", key, content_type))
        if self.fail_on_put is not None and len([c for c in self.calls if c[0] == "put"]) == self.fail_on_put:
            raise StorageError("simulated outage")
        super().put_object(key, data, content_type)

    def delete_object(self, key):
        self.calls.append(("delete", key))
        if self.fail_on_delete:
            raise StorageError("simulated outage")
        super().delete_object(key)

    def presign_get(self, key, ttl_seconds):
        self.calls.append(("presign", key, ttl_seconds))
        return super().presign_get(key, ttl_seconds)


@pytest.fixture
def owner(db_session):
    return UserRepository(db_session).create("owner@example.com", "$argon2id$placeholder")


def images(*content_types):
    return [ImageUpload(data=f"img-{i}".encode(), content_type=ct) for i, ct in enumerate(content_types)]


@pytest.mark.parametrize(
    "content_type,expected",
    [
        ("image/jpeg", "jpg"),
        ("image/jpg", "jpg"),
        ("IMAGE/PNG", "png"),
        ("image/webp", "webp"),
        ("image/heic", "heic"),
        ("image/jpeg; charset=binary", "jpg"),
        ("application/octet-stream", "bin"),
        ("whatever/else", "bin"),
        ("", "bin"),
    ],
)
def test_extension_for(content_type, expected):
    assert extension_for(content_type) == expected


def test_photo_storage_key_is_deterministic():
    owner_id, meal_id, photo_id = uuid4(), uuid4(), uuid4()
    key = photo_storage_key(owner_id, meal_id, photo_id, "image/png")
    assert key == f"meals/{owner_id}/{meal_id}-{photo_id}.png"
    assert key == photo_storage_key(owner_id, meal_id, photo_id, "image/png")


def test_empty_image_list_fails_without_storage_calls(db_session, owner):
    storage = RecordingStorage()
    with pytest.raises(ValidationError):
        MealCreationWorkflow(storage).create(db_session, owner.id, [])
    assert storage.calls == []
    assert db_session.query(Meal).count() == 0


def test_creates_meal_with_photos_in_submission_order(db_session, owner):
    storage = RecordingStorage()
    created = MealCreationWorkflow(storage).create(
        db_session, owner.id, images("image/png", "image/jpeg", "image/webp")
    )

    assert len(created.photo_ids) == 3
    meal = db_session.get(Meal, created.id)
    assert meal.user_id == owner.id
    assert meal.title is None and meal.notes is None

    persisted = PhotoRepository(db_session).list_for_meal(created.id)
    assert [p.id for p in persisted] == created.photo_ids
    assert all(p.meal_id == created.id for p in persisted)
    assert all(p.status == "uploaded" for p in persisted)
    assert [p.position for p in persisted] == [0, 1, 2]
    assert [p.s3_key.rsplit(".", 1)[1] for p in persisted] == ["png", "jpg", "webp"]

    # Uploads happened in order, each stored with its own content type
    puts = [c for c in storage.calls if c[0] == "put"]
    assert [c[1] for c in puts] == [p.s3_key for p in persisted]
    assert [c[2] for c in puts] == ["image/png", "image/jpeg", "image/webp"]
    assert storage.objects[persisted[0].s3_key].data == b"img-0"


def test_keys_combine_owner_meal_and_photo(db_session, owner):
    created = MealCreationWorkflow(RecordingStorage()).create(db_session, owner.id, images("image/heic"))
    photo = db_session.get(Photo, created.photo_ids[0])
    pattern = rf"^meals/{owner.id}/{created.id}-([0-9a-f-]{{36}})\.heic$"
    match = re.match(pattern, photo.s3_key)
    assert match is not None
    assert UUID(match.group(1)) == photo.id


def test_upload_failure_writes_nothing_and_cleans_up(db_session, owner):
    storage = RecordingStorage(fail_on_put=3)
    with pytest.raises(StorageError):
        MealCreationWorkflow(storage).create(db_session, owner.id, images("image/png", "image/png", "image/png"))

    assert db_session.query(Meal).count() == 0
    assert db_session.query(Photo).count() == 0
    uploaded = [c[1] for c in storage.calls if c[0] == "put"][:2]
    assert [c[1] for c in storage.calls if c[0] == "delete"] == uploaded
    assert storage.objects == {}


def test_transaction_failure_rolls_back_and_cleans_up(db_session, owner, monkeypatch):
    storage = RecordingStorage()

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("connection lost"))

    monkeypatch.setattr(db_session, "commit", failing_commit)
    with pytest.raises(PersistenceError):
        MealCreationWorkflow(storage).create(db_session, owner.id, images("image/jpeg", "image/jpeg"))
    monkeypatch.undo()

    assert db_session.query(Meal).count() == 0
    assert db_session.query(Photo).count() == 0
    assert len([c for c in storage.calls if c[0] == "delete"]) == 2
    assert storage.objects == {}


def test_failed_cleanup_does_not_mask_original_error(db_session, owner):
    storage = RecordingStorage(fail_on_put=2, fail_on_delete=True)
    with pytest.raises(StorageError, match="simulated outage"):
        MealCreationWorkflow(storage).create(db_session, owner.id, images("image/png", "image/png"))
    assert db_session.query(Meal).count() == 0


def test_presign_delegates_to_storage():
    storage = RecordingStorage()
    url = MealCreationWorkflow(storage).presign("meals/a/b.jpg", 600)
    assert url == "memory://test-bucket/meals/a/b.jpg?expires=600"
    assert storage.calls == [("presign", "meals/a/b.jpg", 600)]


def test_presign_failure_propagates():
    class BrokenStorage(RecordingStorage):
        def presign_get(self, key, ttl_seconds):
            raise StorageError("presign failed")

    with pytest.raises(StorageError):
        MealCreationWorkflow(BrokenStorage()).presign("meals/a/b.jpg", 600)
