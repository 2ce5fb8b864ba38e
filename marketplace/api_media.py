# marketplace/api_media.py
import logging

from fastapi import APIRouter, Request, Response

from marketplace.errors import NotFound

logger = logging.getLogger("adspace_backend")

router = APIRouter(prefix="/api/images", tags=["images"])


@router.get("/{file_id}")
def get_image(file_id: str, request: Request):
    stored = request.app.state.media.open(file_id)
    if stored is None:
        logger.info(f"Image not found for ID: {file_id}")
        raise NotFound("Image not found")
    data, content_type = stored
    return Response(
        content=data,
        media_type=content_type,
        headers={"Cache-Control": "public, max-age=86400"},
    )
