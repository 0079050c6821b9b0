import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from app.api.endpoints import interests, notifications, payments, realtime
from app.core.database import Base, SessionLocal, engine
from app.core.settings import settings
from app.models import credit_bundle, interest, notification, property, transaction, user  # noqa: F401
from app.services.ledger import seed_default_bundles


logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("propconnect")

app = FastAPI(title="PropConnect Credits & Payments API")

# Configure CORS
origins = settings.resolved_cors_origins()
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
def startup() -> None:
    if settings.is_production and settings.jwt_secret == "change-me-in-production-please-32b":
        raise RuntimeError("JWT_SECRET must be set in production")
    if settings.db_auto_create:
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        created = seed_default_bundles(db)
        if created:
            logger.info("startup.bundles_seeded count=%s", created)
    finally:
        db.close()

    if not settings.payments_configured:
        logger.warning("startup.payments_disabled reason=PAYSTACK_SECRET_KEY not set")


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Validation failed", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("request.unhandled_error method=%s path=%s", request.method, request.url.path)
    message = "Internal server error" if settings.is_production else str(exc)
    return JSONResponse(status_code=500, content={"success": False, "error": message})


# API Routes
app.include_router(payments.router, prefix="/api", tags=["payments"])
app.include_router(interests.router, prefix="/api", tags=["interests"])
app.include_router(notifications.router, prefix="/api", tags=["notifications"])
app.include_router(realtime.router, tags=["realtime"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "payments_configured": settings.payments_configured}
