# kudimall/db/base.py
# Общая declarative база для SQLAlchemy.
# Этот модуль должен быть максимально простым и не импортировать модели,
# чтобы избежать циклических импортов. Модели импортируют Base отсюда.

from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base

# Единственная точка определения Base для всех моделей
Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC: SQLite не хранит tzinfo, поэтому все метки времени без зоны."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
