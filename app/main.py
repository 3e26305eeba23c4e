# app/main.py

from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI
from api.routes import friend_requests
from api.exception_handlers import register_exception_handlers
from config.settings import settings
from infrastructure.redis_connection import redis_connection
from infrastructure.postgres_connection import postgres_connection
import socketio
import logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events"""
    # Startup: Initialize connections
    await redis_connection.connect()
    await postgres_connection.connect()
    logger.info(f"{settings.APP_NAME} started")

    yield

    # Shutdown: Close connections
    await postgres_connection.disconnect()
    await redis_connection.disconnect()


def create_app() -> FastAPI:
    """Build the FastAPI application with routes and exception handlers"""
    fastapi_app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

    # Register domain exception handlers
    register_exception_handlers(fastapi_app)

    # Health check endpoint
    @fastapi_app.get("/health")
    async def health_check():
        """Health check endpoint for Docker and monitoring"""
        return {"status": "healthy"}

    # CORS configuration - important: can't use "*" with allow_credentials=True
    fastapi_app.add_middleware(
        middleware_class=CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,  # Required for cookies/authentication
        allow_methods=["*"],
        allow_headers=["*"],
    )

    fastapi_app.include_router(friend_requests.friend_requests_router, prefix="/v1")
    return fastapi_app


fastapi_app = create_app()

# Import Socket.IO instance and register all namespaces
from api.socketio import sio

# Wrap FastAPI app with Socket.IO
# This allows Socket.IO to handle /socket.io/* paths and pass everything else to FastAPI
app = socketio.ASGIApp(sio, fastapi_app)
