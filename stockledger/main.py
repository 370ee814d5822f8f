import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from stockledger.config.settings import settings
from stockledger.config.database import init_db
from stockledger.core.exceptions import register_exception_handlers
from stockledger.core.middleware import setup_middleware
from stockledger.api.v1.router import api_router

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"{settings.app_name} starting, version {settings.version}")
    logger.info(f"Environment: {'Development' if settings.debug else 'Production'}")
    init_db()

    yield

    # Shutdown
    logger.info(f"{settings.app_name} shutting down")

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Inventory stock ledger: sales, purchases, transfers and stock movements",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan
)

# Setup middleware and error handlers
setup_middleware(app)
register_exception_handlers(app)

# Include routers
app.include_router(api_router, prefix="/api/v1")

# Root endpoint
@app.get("/")
async def root():
    return {
        "message": settings.app_name,
        "version": settings.version,
        "status": "running",
        "docs": "/docs" if settings.debug else "Disabled in production",
        "api": "/api/v1"
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "stockledger.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
