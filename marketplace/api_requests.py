# marketplace/api_requests.py
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from marketplace.auth import get_current_user, require_role
from marketplace.entities import User

router = APIRouter(prefix="/api/requests", tags=["requests"])


class SendRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ad_space_id: str = Field(alias="adSpaceId")
    duration: dict[str, Any] = {}
    requirements: Optional[str] = None


class UpdateRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")


@router.post("/send", status_code=201)
def send_request(body: SendRequestBody, request: Request,
                 user: User = Depends(require_role("advertiser"))):
    return request.app.state.requests.send(user, body.ad_space_id, body.duration, body.requirements)


@router.get("/my")
def my_requests(request: Request, user: User = Depends(get_current_user)):
    return request.app.state.requests.list_mine(user)


@router.post("/update/{request_id}")
def update_request(request_id: str, body: UpdateRequestBody, request: Request,
                   user: User = Depends(require_role("owner"))):
    return request.app.state.requests.update_status(
        user, request_id, body.status, body.start_date, body.end_date
    )
