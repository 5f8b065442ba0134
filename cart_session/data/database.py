# cart_session/data/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from cart_session.utils.settings import DATABASE_URL, STORE_TIMEOUT_SECONDS


def engine_options(url: str, timeout: int = STORE_TIMEOUT_SECONDS) -> dict:
    """
    Engine kwargs that bound every store call by `timeout` seconds,
    so a stuck database surfaces as an error instead of a hung request.
    """
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": timeout}}

    options = {"pool_pre_ping": True, "pool_timeout": timeout}
    if url.startswith("postgresql"):
        ms = timeout * 1000
        options["connect_args"] = {
            "connect_timeout": timeout,
            "options": f"-c statement_timeout={ms} -c lock_timeout={ms}",
        }
    return options


engine = create_engine(DATABASE_URL, **engine_options(DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
