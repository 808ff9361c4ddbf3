from __future__ import annotations

from collections.abc import Generator
from functools import lru_cache
import importlib

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.core.db.base import Base


MODEL_MODULES = [
    "app.core.db.models",
    "app.domain.ledger.models",
    "app.domain.fees.models",
    "app.domain.carry.models",
    "app.domain.reporting.models",
    "app.domain.tax.models",
    "app.domain.period_close.models",
]


def import_model_modules() -> None:
    for module_name in MODEL_MODULES:
        importlib.import_module(module_name)


@lru_cache(maxsize=1)
def get_engine():
    # Lazy init so importing the app never needs a reachable database.
    engine = create_engine(settings.database_url, pool_pre_ping=True)
    import_model_modules()
    if settings.auto_create_schema:
        Base.metadata.create_all(bind=engine)
    return engine


def get_session_local() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, expire_on_commit=True, class_=Session)


def get_db() -> Generator[Session, None, None]:
    db = get_session_local()()
    try:
        yield db
    finally:
        db.close()
