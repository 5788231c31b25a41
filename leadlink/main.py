from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from leadlink.api.errors import register_exception_handlers
from leadlink.api.middleware import AuditMiddleware
from leadlink.api.v1.router import v1_router
from leadlink.api.v1.ws import router as ws_router
from leadlink.api.ws import ConnectionManager
from leadlink.common.logging import setup_logging
from leadlink.config import settings
from leadlink.core.notifications.bus import NotificationBus


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # The bus must have its transport before any request can publish
    app.state.connections = ConnectionManager()
    app.state.bus = NotificationBus()
    app.state.bus.attach(app.state.connections)
    yield
    app.state.bus.detach()


app = FastAPI(
    title="LeadLink API",
    description="Local vendor lead matching and acceptance",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
origins = settings.ALLOWED_ORIGINS.split(",") if settings.ALLOWED_ORIGINS != "*" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(AuditMiddleware)

register_exception_handlers(app)

# API routes
app.include_router(v1_router, prefix="/api/v1")
app.include_router(ws_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    connections = getattr(app.state, "connections", None)
    return {
        "status": "healthy",
        "service": "leadlink",
        "version": "1.0.0",
        "env": settings.APP_ENV,
        "websocket_connections": connections.active_connections if connections else 0,
    }
