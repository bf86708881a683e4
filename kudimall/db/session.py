# kudimall/db/session.py
# Инициализация SQLAlchemy engine и фабрики сессий.
# Поддерживает как Postgres, так и SQLite (для тестов/локального использования).

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from kudimall.core.config import settings
from kudimall.core.errors import DependencyError

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

# Для sqlite требуется connect_args; для Postgres: пустой dict.
# timeout: писатели SQLite ждут блокировку файла, а не падают с "database is locked"
connect_args = {"check_same_thread": False, "timeout": 30} if DATABASE_URL.startswith("sqlite") else {}

# pool_pre_ping полезен для долгоживущих соединений с Postgres
engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
    pool_pre_ping=True
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope(factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    """
    Одна транзакция: commit при успехе, rollback при любой ошибке.
    Ошибки драйвера (БД недоступна) превращаются в DependencyError.
    """
    session = factory()
    try:
        yield session
        session.commit()
    except (OperationalError, InterfaceError) as e:
        session.rollback()
        logger.error(f"Store is unreachable: {e}")
        raise DependencyError("Database is unavailable") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
