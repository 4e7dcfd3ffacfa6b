"""FastAPI application entrypoint.

Configures logging, error tracking and CORS, includes routers, and exposes a
healthcheck endpoint.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
import logging
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

from .database import init_db
from .deps import get_settings
from .telemetry import init_observability
from .routers import auth as auth_router
from .routers import credentials as credentials_router
from .routers import shopify_sync as shopify_sync_router  # Shopify product sync + shop listing
from .routers import products as products_router
from .routers import purchases as purchases_router  # Purchase ledger uploads and history
from .routers import returns as returns_router
from .routers import orders as orders_router  # Order import and analytics
from . import schemas


def create_app() -> FastAPI:
    init_observability()

    app = FastAPI(
        title="Stock Ledger API",
        description="""
        Purchase and returns ledger backed by a Shopify product catalogue.

        This API provides endpoints for:
        - User authentication and Shopify credential storage
        - Syncing Shopify products (one row per variant SKU, named by shop)
        - Uploading purchase spreadsheets and browsing purchase batches
        - Recording customer returns
        - Importing order exports and order analytics

        ## Authentication

        The API uses JWT-based authentication with HTTP-only cookies.
        All endpoints except `/health`, `/auth/register` and `/auth/login`
        require the cookie set by the login endpoint.
        """,
        version="1.0.0",
    )

    # Trust X-Forwarded-Proto so request.url.scheme is "https" behind a proxy
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    settings = get_settings()

    # BACKEND_CORS_ORIGINS is a comma-separated list
    allowed_origins = [origin.strip() for origin in settings.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]
    logger.info(f"[CORS] Allowed origins: {allowed_origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include all API routers
    app.include_router(auth_router.router)
    app.include_router(credentials_router.router)
    app.include_router(shopify_sync_router.router)
    app.include_router(products_router.router)
    app.include_router(purchases_router.router)
    app.include_router(returns_router.router)
    app.include_router(orders_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    def health():
        return schemas.HealthResponse(status="ok")

    @app.on_event("startup")
    async def startup_event():
        """Create missing tables on startup."""
        init_db()
        logger.info("[STARTUP] Database tables ready")

    # Custom OpenAPI schema with security definitions
    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema

        openapi_schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )

        openapi_schema.setdefault("components", {})["securitySchemes"] = {
            "cookieAuth": {
                "type": "apiKey",
                "in": "cookie",
                "name": "access_token",
                "description": "JWT token stored in HTTP-only cookie. Format: 'Bearer <token>'"
            }
        }

        public_endpoints = ["/health", "/auth/register", "/auth/login"]

        for path in openapi_schema["paths"]:
            if path in public_endpoints:
                continue
            for method in openapi_schema["paths"][path]:
                if "security" not in openapi_schema["paths"][path][method]:
                    openapi_schema["paths"][path][method]["security"] = [
                        {"cookieAuth": []}
                    ]

        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi
    return app


app = create_app()
