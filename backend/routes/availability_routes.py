from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_admin
from backend.core.errors import BookingError, to_http_exception
from backend.core.timeutils import local_now
from backend.database import get_db
from backend.models.user import User
from backend.routes.common import database_unavailable, normalize_instant
from backend.services import configuration, slots

router = APIRouter(tags=['available-slots'])

MAX_GENERATE_DAYS = 28


class CreateSlotRequest(BaseModel):
    date: datetime
    is_enabled: bool = True

    @field_validator('date')
    @classmethod
    def normalize_date(cls, value: datetime) -> datetime:
        return normalize_instant(value)


class UpdateSlotRequest(BaseModel):
    is_enabled: bool


class GenerateSlotsRequest(BaseModel):
    start_date: date | None = None
    days: int = Field(default=7, ge=1, le=MAX_GENERATE_DAYS)
    is_enabled: bool = True


class SlotResponse(BaseModel):
    id: int
    date: datetime
    is_enabled: bool

    class Config:
        from_attributes = True


class SlotStatusResponse(SlotResponse):
    is_booked: bool
    status: str


class GenerateSlotsResponse(BaseModel):
    created: int


def _to_status_response(view: slots.SlotView) -> SlotStatusResponse:
    return SlotStatusResponse(
        id=view.id,
        date=view.date,
        is_enabled=view.is_enabled,
        is_booked=view.is_booked,
        status=view.status,
    )


@router.get('', response_model=list[SlotStatusResponse])
def list_available_slots(
    slot_date: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
):
    try:
        views = slots.list_all(db) if slot_date is None else slots.list_for_date(db, slot_date)
        return [_to_status_response(view) for view in views]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/range', response_model=list[SlotStatusResponse])
def list_available_slots_in_range(
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db),
):
    if end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid date range.',
        )

    try:
        views = slots.list_for_range(
            db,
            datetime.combine(start_date, time.min),
            datetime.combine(end_date, time.max),
        )
        return [_to_status_response(view) for view in views]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def create_available_slot(
    data: CreateSlotRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        return slots.create_slot(db, data.date, data.is_enabled)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.post('/generate', response_model=GenerateSlotsResponse, status_code=status.HTTP_201_CREATED)
def generate_available_slots(
    data: GenerateSlotsRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        settings = configuration.get_settings(db)
        created = slots.generate_slots(
            db,
            settings,
            start_day=data.start_date or local_now().date(),
            days=data.days,
            enabled=data.is_enabled,
        )
        return GenerateSlotsResponse(created=created)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.put('/{slot_id}', response_model=SlotResponse)
def update_available_slot(
    slot_id: int,
    data: UpdateSlotRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        return slots.update_slot(db, slot_id, data.is_enabled)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.delete('/{slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_available_slot(
    slot_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        slots.delete_slot(db, slot_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc
