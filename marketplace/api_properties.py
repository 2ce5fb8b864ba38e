# marketplace/api_properties.py
"""JSON-body listing endpoints kept for the older dashboard screens."""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from marketplace.auth import require_role
from marketplace.entities import User

router = APIRouter(prefix="/api/properties", tags=["properties"])

owner_only = require_role("owner")


class PropertyBody(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    images: list[dict[str, Any]] = []
    address: Optional[str] = None
    footfall: Optional[float] = None
    footfallType: Optional[str] = None
    pricing: dict[str, Any] = {}
    availability: dict[str, Any] = {}
    terms: Optional[str] = None


@router.post("/add", status_code=201)
def add_property(body: PropertyBody, request: Request, user: User = Depends(owner_only)):
    return request.app.state.ad_spaces.create_from_json(user.id, body.model_dump())


@router.get("/my")
def my_properties(request: Request, user: User = Depends(owner_only)):
    return request.app.state.ad_spaces.list_for_owner(user.id)


@router.get("/available")
def available_properties(request: Request):
    return request.app.state.ad_spaces.list_available()


@router.get("/analytics")
def property_analytics(request: Request, user: User = Depends(owner_only)):
    return request.app.state.ad_spaces.basic_analytics(user.id)
