import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text

from ..deps import Services, get_services

router = APIRouter()
logger = logging.getLogger("recipeshare.ready")


@router.get("/ready")
def ready(services: Services = Depends(get_services)):
    db_ok = False
    redis_ok = False
    try:
        with services.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_ok = True
    except Exception as e:
        logger.warning(f"Database not ready: {e}")
    try:
        redis_ok = services.feed_store.ping()
    except Exception as e:
        logger.warning(f"Redis not ready: {e}")
    return {"ok": db_ok and redis_ok, "db_ok": db_ok, "redis_ok": redis_ok}
