"""
MealMate API - Main Application
FastAPI backend for meal logging, nutrition analytics and the chat nutrition agent.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from .config import settings
from .database import engine, Base
from .routers import chat, health, meals, nutrition, reports
# Import models to ensure they're registered with SQLAlchemy before create_all
from . import models  # noqa: F401


logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


# Create database tables on startup
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    print("=" * 60)
    print(f"🚀 {settings.app_name} v{settings.app_version}")
    if settings.git_commit:
        print(f"📦 Git Commit: {settings.git_commit[:8]}")
    print(f"🤖 Model: {settings.model_id or 'gpt-4o'}")
    print("=" * 60)

    Base.metadata.create_all(bind=engine)

    yield
    # Shutdown (if needed)


# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Log meals, track nutrition goals and chat with your nutrition assistant",
    lifespan=lifespan,
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(meals.router)
app.include_router(reports.router)
app.include_router(chat.router)
app.include_router(nutrition.router)


@app.get("/")
def root():
    """Root endpoint - API status."""
    response = {
        "message": "Welcome to MealMate API",
        "version": settings.app_version,
        "status": "healthy",
        "docs": "/docs"
    }
    if settings.git_commit:
        response["git_commit"] = settings.git_commit[:8]
    return response


@app.get("/health")
def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("mealmate.main:app", host="0.0.0.0", port=8000, reload=True)
