from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.api.routes import admin, auth, dashboard, me, registration
from app.core.config import get_settings
from app.core.error_codes import ErrorCode
from app.core.errors import ApiError
from app.core.logging import configure_logging
from app.db.seed import seed_if_needed
from app.db.session import SessionLocal

settings = get_settings()
configure_logging(settings)

app = FastAPI(title=settings.app_name, version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApiError)
async def handle_api_error(_, exc: ApiError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": exc.code, "message": exc.message}},
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(_: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg', 'invalid value')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=422,
        content={"error": {"code": ErrorCode.VALIDATION_ERROR, "message": message}},
    )


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.on_event("startup")
def on_startup() -> None:
    if settings.app_env == "production" and settings.email_sender_backend != "smtp":
        raise RuntimeError("EMAIL_SENDER_BACKEND must be 'smtp' in production")
    if settings.enrollment_backend not in ("database", "http"):
        raise RuntimeError(f"Unsupported ENROLLMENT_BACKEND: {settings.enrollment_backend}")
    if settings.enrollment_backend == "http" and not settings.lms_base_url:
        raise RuntimeError("LMS_BASE_URL is required when ENROLLMENT_BACKEND is 'http'")

    if settings.seed_data:
        try:
            with SessionLocal() as db:
                seed_if_needed(db)
                db.commit()
        except SQLAlchemyError as exc:
            raise RuntimeError("Database schema is not ready. Run: alembic upgrade head") from exc


app.include_router(auth.router)
app.include_router(registration.router)
app.include_router(me.router)
app.include_router(dashboard.router)
app.include_router(admin.router)
