import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from closerflow.core.config import settings
from closerflow.core.database import SessionLocal, init_db
from closerflow.core.profile_cache import ProfileCache
from closerflow.routes.account_requests import router as account_requests_router
from closerflow.routes.analysis import router as analysis_router
from closerflow.routes.auth import router as auth_router
from closerflow.routes.closing_issues import router as closing_issues_router
from closerflow.routes.closings import router as closings_router
from closerflow.routes.health import router as health_router
from closerflow.routes.import_export import router as import_export_router
from closerflow.routes.organizations import router as organizations_router
from closerflow.routes.products import router as products_router
from closerflow.routes.stores import router as stores_router
from closerflow.routes.users import router as users_router
from closerflow.services.seed import seed_demo

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    app = FastAPI(title="CloserFlow API", version="0.1.0")
    app.state.profile_cache = ProfileCache(ttl_seconds=settings.profile_cache_ttl_seconds)

    origins = settings.cors_origins
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(health_router, tags=["health"])
    app.include_router(auth_router, prefix="/auth", tags=["auth"])
    app.include_router(closings_router, prefix="/closings", tags=["closings"])
    app.include_router(import_export_router, prefix="/import", tags=["import-export"])
    app.include_router(stores_router, prefix="/stores", tags=["stores"])
    app.include_router(products_router, prefix="/products", tags=["products"])
    app.include_router(users_router, prefix="/users", tags=["users"])
    app.include_router(organizations_router, prefix="/organizations", tags=["organizations"])
    app.include_router(closing_issues_router, prefix="/closing-issues", tags=["closing-issues"])
    app.include_router(account_requests_router, prefix="/account-requests", tags=["account-requests"])
    app.include_router(analysis_router, prefix="/analysis", tags=["analysis"])

    return app


app = create_app()

# Only seed in development or when explicitly requested
if settings.env == "dev" or os.getenv("FORCE_SEED") == "true":
    try:
        init_db()
        with SessionLocal() as db:
            seed_demo(db)
    except SQLAlchemyError:
        logger.exception("demo seed failed")
