"""
Applications Router - students apply to listings; each application opens a conversation
"""
from uuid import UUID
from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field

from campusnest.database import get_db
from campusnest.dependencies import get_current_user_id
from campusnest.models import Application, User


router = APIRouter()


# Pydantic Schemas
class ApplicationCreate(BaseModel):
    listing_id: str = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1)
    message: Optional[str] = None


class ApplicationResponse(BaseModel):
    id: UUID
    listing_id: str
    applicant_id: str
    owner_id: str
    message: Optional[str]
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


# Endpoints
@router.post("/applications", response_model=ApplicationResponse, status_code=201)
async def create_application(
    payload: ApplicationCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Apply to a listing; the new application id is its conversation id"""
    if payload.owner_id == user_id:
        raise HTTPException(status_code=400, detail="Owners cannot apply to their own listing")

    for required in (user_id, payload.owner_id):
        if not db.get(User, required):
            raise HTTPException(status_code=404, detail=f"User {required} not found")

    existing = db.query(Application)\
        .filter(Application.listing_id == payload.listing_id)\
        .filter(Application.applicant_id == user_id)\
        .first()
    if existing:
        raise HTTPException(status_code=409, detail="Already applied to this listing")

    application = Application(
        listing_id=payload.listing_id,
        applicant_id=user_id,
        owner_id=payload.owner_id,
        message=payload.message,
        status="pending",
    )
    db.add(application)
    db.commit()
    db.refresh(application)

    return application


@router.get("/listings/{listing_id}/applications", response_model=List[ApplicationResponse])
async def list_applications(
    listing_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """List applications for a listing; only the listing owner sees them"""
    applications = db.query(Application)\
        .filter(Application.listing_id == listing_id)\
        .filter(Application.owner_id == user_id)\
        .order_by(Application.created_at.asc())\
        .all()
    return applications
