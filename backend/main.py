"""
Campusnest Backend - FastAPI Application
Student housing marketplace: applications and applicant/owner chat
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from campusnest.config import get_settings
from campusnest.logging_config import configure_logging
from campusnest.routers import chat, applications
from campusnest.database import engine, Base
from campusnest.models import User, Application, Message  # noqa: F401

configure_logging()
settings = get_settings()

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Campusnest API",
    description="Student housing marketplace with live applicant/owner chat",
    version="0.1.0",
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "campusnest-api"}


app.include_router(applications.router, prefix="/api", tags=["applications"])
app.include_router(chat.router, prefix="/api", tags=["chat"])
