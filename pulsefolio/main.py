from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import bookmarks, health, tokens, wallet
from .api.deps import get_background_poller
from .config import settings
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield
    get_background_poller().stop_all()


# Create FastAPI app
app = FastAPI(
    title="Pulsefolio API",
    description="PulseChain wallet portfolio aggregation backend",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(wallet.router, tags=["Wallet"])
app.include_router(tokens.router, tags=["Tokens"])
app.include_router(bookmarks.router, tags=["Bookmarks"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "Pulsefolio API",
        "version": __version__,
        "description": "PulseChain wallet portfolio aggregation backend",
        "docs": "/docs",
        "health": "/healthz",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pulsefolio.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
