# api/stages/main.py
import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from swagger_ui_bundle import swagger_ui_path

from .config import settings
from .database import Base, SessionLocal, engine
from .errors import AppError, StoreError, ValidationError
from .provisioning import ensure_bootstrap_admin
from .routers_admin import router as admin_router
from .routers_auth import router as auth_router
from .routers_demandes import router as demandes_router
from .routers_documents import router as documents_router
from .routers_evaluations import router as evaluations_router
from .routers_stagiaires import router as stagiaires_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Stages API",
    version="0.1.0",
    openapi_url="/openapi.json",
    docs_url=None,
    redoc_url=None,
)

# --- CORS ---
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
    expose_headers=["Content-Disposition"],
)


# --- Sécurité : CSP stricte par défaut ---
@app.middleware("http")
async def security_headers(request: Request, call_next):
    resp = await call_next(request)

    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    resp.headers.setdefault("X-Frame-Options", "DENY")
    resp.headers.setdefault("Referrer-Policy", "no-referrer")

    if request.url.path == "/docs":
        # Swagger UI a besoin de scripts inline
        resp.headers["Content-Security-Policy"] = (
            "default-src 'self'; img-src 'self' data:; "
            "style-src 'self' 'unsafe-inline'; script-src 'self' 'unsafe-inline'; "
            "connect-src 'self'; frame-ancestors 'self'"
        )
    else:
        resp.headers.setdefault(
            "Content-Security-Policy",
            "default-src 'self'; img-src 'self' data:; "
            "style-src 'self' 'unsafe-inline'; script-src 'self'; frame-ancestors 'self'",
        )
    return resp


# --- Erreurs -> enveloppe JSON ---
def _error_body(error: str, code: str, details=None) -> dict:
    body = {"success": False, "error": error, "code": code}
    if details:
        body["details"] = details
    return body


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    message = exc.message
    if exc.status_code >= 500:
        # le détail (chemins, erreur OS) reste dans les logs
        logger.error("%s sur %s %s: %s", exc.code, request.method, request.url.path, exc.message)
        message = type(exc).message
    details = None
    if isinstance(exc, ValidationError) and exc.field:
        details = [{"field": exc.field, "message": exc.message}]
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(message, exc.code, details),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        # on retire "body" / "query" en tête de chemin
        loc = [str(part) for part in err.get("loc", ())[1:]]
        details.append({"field": ".".join(loc) or None, "message": err.get("msg", "")})
    return JSONResponse(
        status_code=400,
        content=_error_body("Données invalides", ValidationError.code, details),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail), "http_error"),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Erreur base de données sur %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=StoreError.status_code,
        content=_error_body(StoreError.message, StoreError.code),
    )


# --- Startup ---
@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    logger.info("[startup] Schéma OK")

    upload_dir = Path(settings.UPLOAD_DIR)
    try:
        upload_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("[startup] Création du dossier %s impossible: %s", upload_dir, e)

    # lève une erreur (et bloque le démarrage) si l'amorçage est mal configuré
    with SessionLocal() as db:
        ensure_bootstrap_admin(db, settings)


# --- Routes ---
app.include_router(auth_router)
app.include_router(demandes_router)
app.include_router(documents_router)
app.include_router(evaluations_router)
app.include_router(stagiaires_router)
app.include_router(admin_router)


@app.get("/health", tags=["health"])
def health():
    return {"success": True, "status": "ok", "env": settings.APP_ENV}


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    schema = get_openapi(title=app.title, version=app.version, routes=app.routes)
    schema["openapi"] = "3.0.3"
    app.openapi_schema = schema
    return app.openapi_schema


app.openapi = custom_openapi

# --- Swagger UI local ---
app.mount("/static", StaticFiles(directory=swagger_ui_path), name="static")


@app.get("/docs", include_in_schema=False)
def custom_swagger_ui():
    return get_swagger_ui_html(
        openapi_url=app.openapi_url,
        title="Stages API - Docs",
        swagger_js_url="/static/swagger-ui-bundle.js",
        swagger_css_url="/static/swagger-ui.css",
    )
