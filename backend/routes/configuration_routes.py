from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_admin
from backend.core.errors import BookingError, to_http_exception
from backend.core.timeutils import local_now
from backend.database import get_db
from backend.models.user import User
from backend.routes.common import database_unavailable
from backend.services import configuration

router = APIRouter(tags=['booking-configurations'])


class CreateConfigurationRequest(BaseModel):
    key: str
    value: str
    description: str | None = None


class UpdateConfigurationRequest(BaseModel):
    value: str | None = None
    description: str | None = None


class ConfigurationResponse(BaseModel):
    id: int
    key: str
    value: str
    description: str | None = None
    updated_at: datetime

    class Config:
        from_attributes = True


class BookingWindowResponse(BaseModel):
    is_open: bool
    description: str
    next_opening: datetime
    slot_hours: str
    disabled_days: list[int]


@router.get('', response_model=list[ConfigurationResponse])
def list_booking_configurations(db: Session = Depends(get_db)):
    try:
        return configuration.list_configurations(db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/window', response_model=BookingWindowResponse)
def get_booking_window(db: Session = Depends(get_db)):
    try:
        settings = configuration.get_settings(db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    now = local_now()
    return BookingWindowResponse(
        is_open=settings.is_booking_window_open(now),
        description=settings.describe_booking_window(),
        next_opening=settings.next_window_opening(now),
        slot_hours=settings.describe_slot_hours(),
        disabled_days=sorted(settings.disabled_days),
    )


@router.get('/{key}', response_model=ConfigurationResponse)
def get_booking_configuration(key: str, db: Session = Depends(get_db)):
    try:
        return configuration.get_configuration(db, key)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=ConfigurationResponse, status_code=status.HTTP_201_CREATED)
def create_booking_configuration(
    data: CreateConfigurationRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        return configuration.create_configuration(db, data.key, data.value, data.description)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.put('/{config_id}', response_model=ConfigurationResponse)
def update_booking_configuration(
    config_id: int,
    data: UpdateConfigurationRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        return configuration.update_configuration(db, config_id, data.value, data.description)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.delete('/{config_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_booking_configuration(
    config_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        configuration.delete_configuration(db, config_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc
