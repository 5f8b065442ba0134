# cart_session/tasks/expire.py
from cart_session.celery_worker import celery_app
from cart_session.data.database import SessionLocal
from cart_session.repos.cart_session_repo import CartSessionStore
from cart_session.services.product_client import ProductClient
from cart_session.utils.logging import get_logger

logger = get_logger(__name__)


def run_cleanup(db, catalog) -> dict:
    store = CartSessionStore(db)
    return store.cleanup(catalog).as_dict()


@celery_app.task(name="cart_session.tasks.expire.reap_expired_carts_task")
def reap_expired_carts_task():
    """
    Daily sweep of expired, corrupt and dangling cart data.
    Nothing waits on this task: failures are logged and the next beat run
    simply tries again.
    """
    logger.info("Reap expired carts task started")

    db = SessionLocal()
    try:
        counts = run_cleanup(db, ProductClient())
        logger.info(
            f"Reaped {counts['expired_count']} expired carts, "
            f"{counts['corrupt_count']} corrupt carts, "
            f"{counts['pruned_item_count']} dangling items"
        )
        return counts
    except Exception as e:
        logger.exception(f"Reap expired carts task failed: {e}")
        return None
    finally:
        db.close()
