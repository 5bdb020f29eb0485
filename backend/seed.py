"""Create tables, default booking configuration and a batch of slots.

Usage:
    python -m backend.seed [--days N] [--admin-username NAME --admin-password PW --admin-email EMAIL]
"""
import argparse
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from backend.core.errors import Conflict
from backend.core.timeutils import local_now
from backend.database import Base, SessionLocal, engine
from backend.models import appointment, availability, booking_configuration, user  # noqa: F401
from backend.services import configuration, slots, users

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('--days', type=int, default=7, help='number of days of slots to generate')
    parser.add_argument('--admin-username')
    parser.add_argument('--admin-password')
    parser.add_argument('--admin-email')
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    args = parse_args(argv)

    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        configuration.seed_defaults(db)

        if args.admin_username and args.admin_password and args.admin_email:
            try:
                users.create_user(
                    db,
                    username=args.admin_username,
                    password=args.admin_password,
                    name='Admin User',
                    email=args.admin_email,
                    is_admin=True,
                )
            except Conflict as exc:
                logger.warning('Admin account not created: %s', exc.message)

        created = slots.generate_slots(
            db,
            configuration.load_settings(db),
            start_day=local_now().date(),
            days=args.days,
        )
    except SQLAlchemyError:
        logger.exception('Seeding failed')
        sys.exit(1)
    finally:
        db.close()

    print(f'Created {created} available slot(s).')


if __name__ == "__main__":
    main()
