from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .db import Base, engine, SessionLocal, ensure_schema
from .errors import RejapError
from .seed import seed_curriculum
from .settings import settings
from .routers import health
from .routers import auth
from .routers import learning
from .routers import quiz
from .routers import user

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	Base.metadata.create_all(bind=engine)
	ensure_schema()
	if settings.seed_on_startup:
		with SessionLocal() as db:
			seed_curriculum(db)
	yield


app = FastAPI(title="Rejap API", lifespan=lifespan)
app.add_middleware(
	CORSMiddleware,
	allow_origins=[settings.frontend_url],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(learning.router)
app.include_router(quiz.router)
app.include_router(user.router)


@app.exception_handler(RejapError)
async def rejap_error_handler(request: Request, exc: RejapError):
	if exc.status_code >= 500:
		logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
	return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
	# Malformed bodies and query strings are caller errors, reported as 400
	fields = [".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in exc.errors()]
	message = "invalid or missing fields: " + ", ".join(f for f in fields if f) if fields else "invalid request"
	return JSONResponse(status_code=400, content={"detail": message})


@app.get("/", include_in_schema=False)
def root():
	return {
		"message": "Rejap API",
		"endpoints": {
			"learning": "/levels, /modules, /content",
			"user": "/user/me, /user/progress",
			"quiz": "/quiz, /quiz/submit, /quiz/diagnostic",
		},
		"gemini_configured": bool(settings.gemini_api_key),
	}
