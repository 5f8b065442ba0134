# cart_session/main.py
from fastapi import FastAPI
import uvicorn

from cart_session.api.routers import carts, health
from cart_session.data.database import Base, engine
from cart_session.utils.logging import get_logger

# register all models on Base.metadata before create_all
from cart_session.data.models import CartSessionModel  # noqa: F401

logger = get_logger(__name__)


def init_db() -> None:
    logger.info(f"Models registered in Base.metadata: {list(Base.metadata.tables.keys())}")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise
    logger.info("Database tables ready")


def create_app() -> FastAPI:
    init_db()

    app = FastAPI(
        title="Cart Session Service",
        version="1.0.0",
    )

    app.include_router(health.router)
    app.include_router(carts.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
