"""Mark past confirmed appointments as completed.

Usage:
    python -m backend.complete_appointments
"""
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from backend.core.timeutils import local_now
from backend.database import SessionLocal
from backend.services.completion import complete_past_appointments

logger = logging.getLogger(__name__)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    db = SessionLocal()
    try:
        completed = complete_past_appointments(db, now=local_now())
    except SQLAlchemyError:
        logger.exception('Completion sweep failed')
        sys.exit(1)
    finally:
        db.close()

    print(f'Completed {completed} appointment(s).')


if __name__ == "__main__":
    main()
