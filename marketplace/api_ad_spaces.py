# marketplace/api_ad_spaces.py
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from marketplace.auth import require_role
from marketplace.entities import User

router = APIRouter(prefix="/api/adSpaces", tags=["adSpaces"])

owner_only = require_role("owner")


def _read_uploads(images: Optional[List[UploadFile]]) -> list[tuple[str, bytes]]:
    uploads = []
    for upload in images or []:
        data = upload.file.read()
        if data:
            uploads.append((upload.filename or "image", data))
    return uploads


def _form_fields(**fields) -> dict:
    return {k: v for k, v in fields.items() if v is not None}


@router.post("/add", status_code=201)
def add_ad_space(
    request: Request,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    footfall: Optional[str] = Form(None),
    footfallType: Optional[str] = Form(None),
    baseMonthlyRate: Optional[str] = Form(None),
    availabilityStart: Optional[str] = Form(None),
    availabilityEnd: Optional[str] = Form(None),
    terms: Optional[str] = Form(None),
    captions: Optional[List[str]] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    user: User = Depends(owner_only),
):
    fields = _form_fields(
        title=title, description=description, address=address, footfall=footfall,
        footfallType=footfallType, baseMonthlyRate=baseMonthlyRate,
        availabilityStart=availabilityStart, availabilityEnd=availabilityEnd, terms=terms,
    )
    return request.app.state.ad_spaces.create(user.id, fields, _read_uploads(images), captions or [])


@router.get("/my")
def my_ad_spaces(request: Request, user: User = Depends(owner_only)):
    return request.app.state.ad_spaces.list_for_owner(user.id)


@router.get("/available")
def available_ad_spaces(request: Request):
    return request.app.state.ad_spaces.list_available()


@router.get("/analytics")
def analytics(request: Request, user: User = Depends(owner_only)):
    return request.app.state.ad_spaces.analytics(user.id)


@router.get("/{ad_space_id}")
def get_ad_space(ad_space_id: str, request: Request):
    return request.app.state.ad_spaces.get(ad_space_id)


@router.put("/{ad_space_id}")
def update_ad_space(
    ad_space_id: str,
    request: Request,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    footfall: Optional[str] = Form(None),
    footfallType: Optional[str] = Form(None),
    baseMonthlyRate: Optional[str] = Form(None),
    availabilityStart: Optional[str] = Form(None),
    availabilityEnd: Optional[str] = Form(None),
    terms: Optional[str] = Form(None),
    captions: Optional[List[str]] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    user: User = Depends(owner_only),
):
    fields = _form_fields(
        title=title, description=description, address=address, footfall=footfall,
        footfallType=footfallType, baseMonthlyRate=baseMonthlyRate,
        availabilityStart=availabilityStart, availabilityEnd=availabilityEnd, terms=terms,
    )
    return request.app.state.ad_spaces.update(user.id, ad_space_id, fields, _read_uploads(images), captions or [])


@router.delete("/{ad_space_id}")
def delete_ad_space(ad_space_id: str, request: Request, user: User = Depends(owner_only)):
    return request.app.state.ad_spaces.delete(user.id, ad_space_id)
