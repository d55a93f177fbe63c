import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .db import Base, engine, ensure_schema
from .errors import LedgerError
from .settings import settings
from .routers import health
from .routers import users
from .routers import skills
from .routers import vocabulary
from .routers import practice
from .routers import progress

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Linguist Mastery API")
app.include_router(health.router)
app.include_router(users.router)
app.include_router(skills.router)
app.include_router(vocabulary.router)
app.include_router(practice.router)
app.include_router(progress.router)

_REASONS = {400: "Bad Request", 404: "Not Found", 409: "Conflict", 500: "Internal Server Error"}


def error_body(status: int, message: str, details=None) -> dict:
	return {
		"status": status,
		"error": _REASONS.get(status, "Error"),
		"message": message,
		"details": details,
		"timestamp": datetime.now(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds"),
	}


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
	if exc.status_code >= 500:
		# Storage failures carry driver detail; keep it in the log, not the response
		logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
		return JSONResponse(status_code=exc.status_code, content=error_body(exc.status_code, "An unexpected error occurred"))
	return JSONResponse(status_code=exc.status_code, content=error_body(exc.status_code, exc.message, exc.details))


@app.get("/info")
def root():
	return {"status": "ok", "log_level": settings.log_level}


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	# Apply lightweight additive migrations
	ensure_schema(engine)
	logger.info("database schema ready")
