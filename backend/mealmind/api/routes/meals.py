import base64
import binascii
from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from mealmind.api.dependencies import get_current_user_id, get_meal_workflow
from mealmind.core.config import settings
from mealmind.core.database import get_db
from mealmind.core.exceptions import NotFoundError, ValidationError
from mealmind.repositories.meal_repository import MealRepository
from mealmind.repositories.photo_repository import PhotoRepository
from mealmind.services.meal_workflow import (
    DEFAULT_CONTENT_TYPE,
    CreatedMeal,
    ImageUpload,
    MealCreationWorkflow,
)

router = APIRouter(prefix="/meals", tags=["meals"])

MEALS_PATH = "/api/v1/meals"
# Multipart clients send either name for the repeated file field
UPLOAD_FIELD_NAMES = ("files", "files[]")


class Base64Image(BaseModel):
    data: str
    content_type: Optional[str] = None


class CreateMealBase64Request(BaseModel):
    images: List[Base64Image]


class CreatedMealResponse(BaseModel):
    id: UUID
    created_at: datetime
    photo_ids: List[UUID]


class MealSummary(BaseModel):
    id: UUID
    title: Optional[str]
    created_at: datetime
    photos: List[str]


class NutritionResponse(BaseModel):
    total_calories_kcal: Optional[float] = None
    protein_g: Optional[float] = None
    fat_g: Optional[float] = None
    carbs_g: Optional[float] = None
    sodium_mg: Optional[float] = None
    sugar_g: Optional[float] = None
    fiber_g: Optional[float] = None
    micros: Optional[Any] = None
    ai_raw: Optional[Any] = None
    global_score: Optional[float] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MealDetailsResponse(BaseModel):
    id: UUID
    title: Optional[str]
    notes: Optional[str]
    created_at: datetime
    nutrition: Optional[NutritionResponse]
    images: List[str]


class UpdateMealRequest(BaseModel):
    id: UUID
    title: Optional[str] = None
    notes: Optional[str] = None


class DeleteMealRequest(BaseModel):
    id: UUID


def _check_size(data: bytes) -> None:
    if len(data) > settings.MAX_IMAGE_BYTES:
        raise ValidationError(f"image exceeds {settings.MAX_IMAGE_BYTES} bytes")


def _created_response(created: CreatedMeal, response: Response) -> CreatedMealResponse:
    # Location points clients at the new meal resource
    response.headers["Location"] = f"{MEALS_PATH}/{created.id}"
    return CreatedMealResponse(id=created.id, created_at=created.created_at, photo_ids=created.photo_ids)


@router.post("", response_model=CreatedMealResponse, status_code=status.HTTP_201_CREATED)
async def create_meal_multipart(
    request: Request,
    response: Response,
    user_id: UUID = Depends(get_current_user_id),
    workflow: MealCreationWorkflow = Depends(get_meal_workflow),
    db: Session = Depends(get_db),
):
    """Create a meal from multipart file parts named files or files[]"""
    # Async only to read the form; the workflow blocks and goes to the threadpool
    form = await request.form()
    images = []
    # One pass over the parts keeps submission order when both names are mixed
    for name, part in form.multi_items():
        if name not in UPLOAD_FIELD_NAMES:
            continue
        if not isinstance(part, UploadFile):
            raise ValidationError(f"{name} must be a file part")
        data = await part.read()
        _check_size(data)
        # Each part keeps its own declared content type
        images.append(ImageUpload(data=data, content_type=part.content_type or DEFAULT_CONTENT_TYPE))
    if not images:
        raise ValidationError("files[] is required")
    created = await run_in_threadpool(workflow.create, db, user_id, images)
    return _created_response(created, response)


@router.post("/base64", response_model=CreatedMealResponse, status_code=status.HTTP_201_CREATED)
def create_meal_base64(
    payload: CreateMealBase64Request,
    response: Response,
    user_id: UUID = Depends(get_current_user_id),
    workflow: MealCreationWorkflow = Depends(get_meal_workflow),
    db: Session = Depends(get_db),
):
    """Create a meal from base64-encoded images, each with its own content type"""
    images = []
    for index, image in enumerate(payload.images):
        # validate=True rejects stray characters instead of silently dropping them
        try:
            data = base64.b64decode(image.data, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError(f"images[{index}].data is not valid base64")
        _check_size(data)
        images.append(ImageUpload(data=data, content_type=image.content_type or DEFAULT_CONTENT_TYPE))
    return _created_response(workflow.create(db, user_id, images), response)


@router.get("", response_model=List[MealSummary])
def list_meals(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """List the current user's meals, newest first, with photo keys"""
    meals = MealRepository(db).list_for_owner(user_id, limit, offset)
    # One query for the photo keys of the whole page
    keys = PhotoRepository(db).keys_for_meals([meal.id for meal in meals])
    return [
        MealSummary(id=meal.id, title=meal.title, created_at=meal.created_at, photos=keys[meal.id])
        for meal in meals
    ]


@router.get("/{meal_id}", response_model=MealDetailsResponse)
def get_meal(
    meal_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Get a meal with its nutrition and photo keys"""
    meals = MealRepository(db)
    # Raises NotFoundError for other users' meals as well as missing ones
    meal = meals.get_owned(user_id, meal_id)
    nutrition = meals.get_nutrition(meal.id)
    photos = PhotoRepository(db).list_for_meal(meal.id)
    return MealDetailsResponse(
        id=meal.id,
        title=meal.title,
        notes=meal.notes,
        created_at=meal.created_at,
        nutrition=NutritionResponse.model_validate(nutrition) if nutrition else None,
        images=[photo.s3_key for photo in photos],
    )


@router.get("/{meal_id}/photo")
def get_meal_photo(
    meal_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    workflow: MealCreationWorkflow = Depends(get_meal_workflow),
    db: Session = Depends(get_db),
):
    """Redirect to a presigned URL for the meal's first photo"""
    key = PhotoRepository(db).first_key_for_owned_meal(user_id, meal_id)
    if key is None:
        raise NotFoundError("photo not found")
    url = workflow.presign(key, settings.PHOTO_URL_TTL_SECONDS)
    # 307 keeps the method; the URL expires after PHOTO_URL_TTL_SECONDS
    return RedirectResponse(url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.put("", status_code=status.HTTP_204_NO_CONTENT)
def update_meal(
    payload: UpdateMealRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Replace a meal's title and notes"""
    # Full replace: an omitted field is cleared
    MealRepository(db).update(user_id, payload.id, payload.title, payload.notes)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def delete_meal(
    payload: DeleteMealRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Remove a meal from the user's list (the row is kept, unlinked)"""
    MealRepository(db).unlink(user_id, payload.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
