"""
Main FastAPI application factory.
"""
from fastapi import FastAPI
from proxyconf.web import api
from proxyconf.config import settings

def create_app() -> FastAPI:
    """Create and configure the FastAPI application with its routes."""
    app = FastAPI(title=settings.APP_NAME, root_path=settings.ROOT_PATH or "")
    app.include_router(api.router)
    return app
