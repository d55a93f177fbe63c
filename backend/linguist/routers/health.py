import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy.sql import text

from ..db import get_db

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health")
def health(db: Session = Depends(get_db)):
	try:
		db.execute(text("SELECT 1"))
		database = "ok"
	except Exception:
		logger.warning("database probe failed", exc_info=True)
		database = "unavailable"
	return {
		"status": "ok",
		"database": database,
		"timestamp": datetime.now(timezone.utc).isoformat(),
	}
