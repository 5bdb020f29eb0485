import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import ensure_owner_or_admin, get_current_user
from backend.core.errors import BookingError, to_http_exception
from backend.core.timeutils import local_now
from backend.database import get_db
from backend.models.appointment import STATUS_CANCELLED
from backend.models.user import User
from backend.routes.common import database_unavailable, ensure_database_ready, normalize_instant
from backend.services import configuration, ledger
from backend.services.booking import BookingPolicy, book_appointment
from backend.services.completion import complete_past_appointments

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)


class CreateAppointmentRequest(BaseModel):
    date: datetime
    end_time: datetime | None = None

    @field_validator('date', 'end_time')
    @classmethod
    def normalize_datetime(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return normalize_instant(value)


class UpdateAppointmentRequest(BaseModel):
    status: Literal['confirmed', 'completed', 'cancelled'] | None = None


class AppointmentResponse(BaseModel):
    id: int
    user_id: int
    date: datetime
    end_time: datetime
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class CompletionResponse(BaseModel):
    completed: int


@router.get('', response_model=list[AppointmentResponse])
def list_my_appointments(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_database_ready()

    try:
        return ledger.by_user(db, current_user.id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_database_ready()

    try:
        settings = configuration.get_settings(db)
        return book_appointment(
            db,
            current_user,
            data.date,
            settings=settings,
            policy=BookingPolicy.from_config(),
            now=local_now(),
            requested_end=data.end_time,
            background_tasks=background_tasks,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception('Failed to create appointment for user %s', current_user.id)
        raise database_unavailable(db) from exc


@router.post('/complete-past', response_model=CompletionResponse)
def complete_past(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_database_ready()

    try:
        user_scope = None if current_user.is_admin else current_user.id
        completed = complete_past_appointments(db, now=local_now(), user_id=user_scope)
        return CompletionResponse(completed=completed)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_database_ready()

    try:
        appointment = ledger.get(db, appointment_id)
        ensure_owner_or_admin(appointment.user_id, current_user)
        return appointment
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_database_ready()

    try:
        appointment = ledger.get(db, appointment_id)
        ensure_owner_or_admin(appointment.user_id, current_user)

        if not current_user.is_admin and data.status not in (None, STATUS_CANCELLED):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='You can only cancel your own appointments.',
            )

        return ledger.update(db, appointment, data.model_dump(exclude_unset=True))
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_database_ready()

    try:
        appointment = ledger.get(db, appointment_id)
        ensure_owner_or_admin(appointment.user_id, current_user)
        ledger.delete(db, appointment)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc
