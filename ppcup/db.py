from sqlalchemy import create_engine, MetaData
from sqlalchemy.orm import sessionmaker

from ppcup.config import Config

# DATABASE_URL like: postgresql://user:pass@db:5432/ppcup
DATABASE_URL = Config.DATABASE_URL


def make_engine(url: str):
    return create_engine(
        url,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
        echo=False,
    )


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
metadata = MetaData()


def init_db(bind=None) -> None:
    """Create every table that does not exist yet."""
    # models register their tables on `metadata` at import time
    import ppcup.models  # noqa: F401
    metadata.create_all(bind or engine)
