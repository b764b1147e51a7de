import os
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Generator

from platformdirs import user_data_dir
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from genbatch.db.models import Base

APP_NAME = "genbatch"
APP_AUTHOR = "genbatch"
DB_PATH_ENV_VAR = "GENBATCH_DB_PATH"


def resolve_db_path() -> Path:
    """Database file from ``GENBATCH_DB_PATH``, else the user data directory."""
    env_path = os.getenv(DB_PATH_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path(user_data_dir(APP_NAME, APP_AUTHOR)) / f"{APP_NAME}.db"


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    db_file_path = resolve_db_path()
    db_file_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(f"sqlite:///{db_file_path}", echo=False, future=True)


@lru_cache(maxsize=1)
def _session_factory() -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine(), class_=Session)


@contextmanager
def get_db() -> Generator[Session, None, None]:
    db = _session_factory()()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    Base.metadata.create_all(bind=get_engine())


def destroy_db() -> None:
    Base.metadata.drop_all(bind=get_engine())


def reset_engine() -> None:
    """Dispose the cached engine so the next call re-reads ``GENBATCH_DB_PATH``."""
    if get_engine.cache_info().currsize:
        get_engine().dispose()
    get_engine.cache_clear()
    _session_factory.cache_clear()
