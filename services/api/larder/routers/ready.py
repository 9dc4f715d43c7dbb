import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..deps import get_db
from ..infra.redis_client import get_redis

router = APIRouter()
logger = logging.getLogger("larder.ready")


@router.get("/ready")
async def ready(db: Session = Depends(get_db)):
    db_ok = False
    redis_ok = False
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception as e:
        logger.warning(f"Database not ready: {e}")
    try:
        r = await get_redis()
        await r.ping()
        redis_ok = True
    except Exception as e:
        logger.warning(f"Redis not ready: {e}")
    return {"ok": db_ok, "db_ok": db_ok, "redis_ok": redis_ok}
