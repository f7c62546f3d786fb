# storefront/data/unit_of_work.py
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from storefront.domain.errors import TransientStorageError
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@contextmanager
def unit_of_work(db: Session, timeout_ms: int | None = None):
    """
    Granica transakcji: wszystkie zapisy wykonane w bloku są commitowane razem
    albo wszystkie wycofywane.

    - timeout_ms ogranicza czas wykonania (SET LOCAL statement_timeout, tylko postgres)
    - OperationalError (utrata połączenia, timeout, serialization failure) -> TransientStorageError
    - pozostałe wyjątki przechodzą dalej po rollbacku, IntegrityError interpretuje serwis
    """
    try:
        if timeout_ms and db.get_bind().dialect.name == "postgresql":
            db.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))

        yield db

        db.commit()
    except OperationalError as e:
        db.rollback()
        logger.error(f"Transaction rolled back after storage error: {e}")
        raise TransientStorageError() from e
    except Exception:
        db.rollback()
        raise
