"""
Bagami - Marketplace de envíos entre viajeros
=============================================

Aplicación principal FastAPI.
"""

from contextlib import asynccontextmanager
import logging
import sys
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
import structlog
import time

from bagami.core.config import settings
from bagami.core.database import init_db, close_db, engine
from bagami.core.exceptions import BagamiError


# Configurar logging estructurado
logging.basicConfig(format="%(message)s", stream=sys.stdout, level=settings.log_level.upper())

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.is_production
            else structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("app_starting", env=settings.app_env)
    await init_db()
    logger.info("database_ready")

    yield

    logger.info("app_stopping")
    await close_db()


app = FastAPI(
    title=settings.app_name,
    description="""
    ## Bagami

    API del marketplace de envíos entre particulares:
    - Publicaciones de envío (request) y de espacio en maleta (offer)
    - Conversaciones con ofertas de precio
    - Pago con wallet y código de entrega de 6 dígitos
    - Backoffice de administración
    """,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    if settings.is_development or process_time > 1000:
        logger.info(
            "request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(process_time, 2)
        )

    response.headers["X-Process-Time"] = str(round(process_time, 2))
    return response


@app.exception_handler(BagamiError)
async def bagami_exception_handler(request: Request, exc: BagamiError):
    if exc.status_code >= 500:
        logger.error("domain_error", path=request.url.path, code=exc.code, error=exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Error interno del servidor",
            "error": str(exc) if settings.is_development else None
        }
    )


# ===========================================
# ENDPOINTS BASE
# ===========================================

@app.get("/", tags=["Health"])
async def root():
    return {
        "name": settings.app_name,
        "version": "0.1.0",
        "status": "running",
        "docs": "/docs" if settings.is_development else "disabled"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "environment": settings.app_env,
        "checks": {"api": "ok"}
    }


@app.get("/health/ready", tags=["Health"])
async def readiness_check():
    checks = {"database": "unknown"}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.warning("readiness_database_failed", error=str(e))
        checks["database"] = f"error: {str(e)}"

    all_ok = all(v == "ok" for v in checks.values())

    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks
    }


# ===========================================
# INCLUIR ROUTERS
# ===========================================

from bagami.api.routes.auth import router as auth_router
from bagami.api.routes.user import router as user_router
from bagami.api.routes.deliveries import router as deliveries_router
from bagami.api.routes.conversations import router as conversations_router
from bagami.api.routes.offers import router as offers_router
from bagami.api.routes.wallet import router as wallet_router
from bagami.api.routes.platform_fee import router as platform_fee_router
from bagami.api.routes.notifications import router as notifications_router
from bagami.api.routes.reviews import router as reviews_router
from bagami.api.routes.id_documents import router as id_documents_router

app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
app.include_router(user_router, prefix="/api/user", tags=["User"])
app.include_router(deliveries_router, prefix="/api/deliveries", tags=["Deliveries"])
app.include_router(conversations_router, prefix="/api/conversations", tags=["Conversations"])
app.include_router(offers_router, prefix="/api/offers", tags=["Offers"])
app.include_router(wallet_router, prefix="/api/wallet", tags=["Wallet"])
app.include_router(platform_fee_router, prefix="/api/platform-fee", tags=["Platform Fee"])
app.include_router(notifications_router, prefix="/api/notifications", tags=["Notifications"])
app.include_router(reviews_router, prefix="/api/reviews", tags=["Reviews"])
app.include_router(id_documents_router, prefix="/api/id-documents", tags=["ID Documents"])

from bagami.api.backoffice.auth import router as backoffice_auth_router
from bagami.api.backoffice.users import router as backoffice_users_router
from bagami.api.backoffice.deliveries import router as backoffice_deliveries_router
from bagami.api.backoffice.transactions import router as backoffice_transactions_router
from bagami.api.backoffice.admin import router as backoffice_admin_router

app.include_router(backoffice_auth_router, prefix="/api/backoffice", tags=["Backoffice"])
app.include_router(backoffice_users_router, prefix="/api/backoffice/users", tags=["Backoffice"])
app.include_router(backoffice_deliveries_router, prefix="/api/backoffice/deliveries", tags=["Backoffice"])
app.include_router(backoffice_transactions_router, prefix="/api/backoffice", tags=["Backoffice"])
app.include_router(backoffice_admin_router, prefix="/api/backoffice", tags=["Backoffice"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "bagami.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development
    )
