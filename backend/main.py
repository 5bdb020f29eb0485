import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.database import Base, SessionLocal, engine, ensure_appointment_schema, ensure_user_schema
from backend.models import appointment, availability, booking_configuration, user  # noqa: F401
from backend.routes import (
    admin_routes,
    appointment_routes,
    auth_routes,
    availability_routes,
    configuration_routes,
)
from backend.services import configuration

logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

logger = logging.getLogger(__name__)

app = FastAPI(title='Astrology Consultation Booking API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()

    try:
        Base.metadata.create_all(bind=engine)
        ensure_user_schema()
        ensure_appointment_schema()
        db = SessionLocal()
        try:
            configuration.seed_defaults(db)
        finally:
            db.close()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Astrology Booking API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(availability_routes.router, prefix='/available-slots')
app.include_router(configuration_routes.router, prefix='/booking-configurations')
app.include_router(admin_routes.router, prefix='/admin')
