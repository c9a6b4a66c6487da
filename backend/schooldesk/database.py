from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
import logging

from .config import settings
from .errors import ConflictError, StorageError

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url

if DATABASE_URL.startswith("sqlite"):
    sqlite_args = {"check_same_thread": False, "timeout": 30}
else:
    sqlite_args = {}

engine = create_engine(DATABASE_URL, connect_args=sqlite_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """Commit the enclosed writes together or roll all of them back.

    Store failures surface as ``StorageError`` so callers never see driver
    specifics or partial state.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Transaction rejected by constraint: %s", exc.orig)
        raise ConflictError() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Transaction rolled back: %s", exc)
        raise StorageError("Storage operation failed") from exc
    except Exception:
        db.rollback()
        raise
