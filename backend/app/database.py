import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from . import config
from .errors import ConcurrentModificationError, ConsistencyError, StorageUnavailableError

logger = logging.getLogger(__name__)


def normalize_database_url(raw_url: str | None) -> str:
    if not raw_url:
        return f"sqlite:///{config.DEFAULT_DB_PATH}"

    if raw_url.startswith("postgres://"):
        return raw_url.replace("postgres://", "postgresql+psycopg://", 1)

    if raw_url.startswith("postgresql://"):
        return raw_url.replace("postgresql://", "postgresql+psycopg://", 1)

    return raw_url


DATABASE_URL = normalize_database_url(config.DATABASE_URL)

engine_kwargs: dict[str, object] = {"pool_pre_ping": True}
if DATABASE_URL.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}

engine = create_engine(DATABASE_URL, **engine_kwargs)
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
)
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_storage_failure(exc: BaseException) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or nothing at all."""
    try:
        yield db
        db.commit()
        db.expire_all()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrentModificationError(
            "Tournament was modified by another request. Reload and retry."
        ) from exc
    except IntegrityError as exc:
        db.rollback()
        raise ConsistencyError(f"Write rejected by the database: {exc.orig}") from exc
    except DBAPIError as exc:
        db.rollback()
        if is_storage_failure(exc):
            logger.warning("Storage failure, transaction rolled back: %s", exc)
            raise StorageUnavailableError("Storage is unavailable. Retry the request.") from exc
        raise
    except Exception:
        db.rollback()
        raise
