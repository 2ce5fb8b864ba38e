# marketplace/ad_space_service.py
import json
import logging
from collections import defaultdict
from typing import Callable

from sqlalchemy.orm import Session

from marketplace import settings
from marketplace.base_utils import BaseUtils
from marketplace.entities import (
    FOOTFALL_TYPES,
    AdSpace,
    Booking,
    BookingRequest,
    User,
)
from marketplace.errors import BadRequest, NotFound
from marketplace.file_store import MediaService
from marketplace.serializers import ad_space_to_dict

logger = logging.getLogger("adspace_backend")


class AdSpaceService(BaseUtils):
    def __init__(self, session_factory: Callable[[], Session], media: MediaService, cache,
                 cache_ttl: int = settings.AVAILABLE_CACHE_TTL):
        self.SessionFactory = session_factory
        self.media = media
        self.cache = cache
        self.cache_ttl = cache_ttl

    def invalidate_available(self) -> None:
        self.cache.delete(settings.AVAILABLE_CACHE_KEY)

    # -----------------------
    # Field handling
    # -----------------------

    def _apply_fields(self, ad_space: AdSpace, fields: dict, partial: bool) -> None:
        """
        Copies form/JSON fields onto the entity. In partial mode empty values
        keep the current value.
        """
        def provided(key):
            value = fields.get(key)
            return value is not None and value != ""

        for key, attr in (("title", "title"), ("description", "description"), ("address", "address")):
            if provided(key):
                setattr(ad_space, attr, self._coerce_field_to_str(fields[key]))
            elif not partial:
                raise BadRequest(f"{key} is required")

        if provided("footfall") or not partial:
            ad_space.footfall = self._parse_number(fields.get("footfall"), "footfall", cast=int)

        if provided("footfallType") or not partial:
            ad_space.footfall_type = self._require_choice(fields.get("footfallType"), FOOTFALL_TYPES, "footfallType")

        if provided("baseMonthlyRate") or not partial:
            ad_space.base_monthly_rate = self._parse_number(fields.get("baseMonthlyRate"), "baseMonthlyRate")

        if provided("availabilityStart") or not partial:
            ad_space.availability_start = self._parse_datetime(fields.get("availabilityStart"), "availabilityStart")

        if provided("availabilityEnd"):
            ad_space.availability_end = self._parse_datetime(fields.get("availabilityEnd"), "availabilityEnd")

        if provided("terms"):
            ad_space.terms = self._coerce_field_to_str(fields["terms"])
        elif not partial:
            ad_space.terms = ""

        if ad_space.availability_end is not None and ad_space.availability_end <= ad_space.availability_start:
            raise BadRequest("Availability end date must be after start date")

    def _store_images(self, uploads: list[tuple[str, bytes]], captions: list[str]) -> list[dict]:
        if len(uploads) > settings.MAX_IMAGES_PER_AD_SPACE:
            raise BadRequest(
                f"Error uploading images: at most {settings.MAX_IMAGES_PER_AD_SPACE} images are allowed"
            )
        image_ids = self.media.save_images(uploads)
        images = []
        for i, image_id in enumerate(image_ids):
            caption = captions[i] if i < len(captions) else ""
            images.append({"imageId": image_id, "caption": caption or ""})
        return images

    def _load_owned(self, session: Session, owner_id: str, ad_space_id: str) -> AdSpace:
        ad_space = (
            session.query(AdSpace)
            .filter(AdSpace.id == str(ad_space_id), AdSpace.owner_id == str(owner_id))
            .one_or_none()
        )
        if ad_space is None:
            raise NotFound("AdSpace not found")
        return ad_space

    # -----------------------
    # Handlers
    # -----------------------

    def create(self, owner_id: str, fields: dict, uploads: list[tuple[str, bytes]] | None = None,
               captions: list[str] | None = None) -> dict:
        ad_space = AdSpace(owner_id=str(owner_id), status="Available", images=[])
        self._apply_fields(ad_space, fields, partial=False)
        ad_space.images = self._store_images(uploads or [], captions or [])

        new_image_ids = [img["imageId"] for img in ad_space.images]

        session = self.SessionFactory()
        try:
            session.add(ad_space)
            session.commit()
            logger.info(f"AdSpace {ad_space.id} created by {owner_id}")
            out = ad_space_to_dict(ad_space)
        except Exception:
            self.media.delete_many(new_image_ids)
            raise
        finally:
            session.close()

        self.invalidate_available()
        return out

    def create_from_json(self, owner_id: str, body: dict) -> dict:
        """
        JSON variant used by the properties endpoints: pricing/availability
        arrive nested and images are already-stored references.
        """
        pricing = body.get("pricing") or {}
        availability = body.get("availability") or {}
        fields = {
            "title": body.get("title"),
            "description": body.get("description"),
            "address": body.get("address"),
            "footfall": body.get("footfall"),
            "footfallType": body.get("footfallType"),
            "baseMonthlyRate": pricing.get("baseMonthlyRate"),
            "availabilityStart": availability.get("startDate"),
            "availabilityEnd": availability.get("endDate"),
            "terms": body.get("terms"),
        }
        ad_space = AdSpace(owner_id=str(owner_id), status="Available")
        self._apply_fields(ad_space, fields, partial=False)
        images = body.get("images") or []
        if len(images) > settings.MAX_IMAGES_PER_AD_SPACE:
            raise BadRequest(f"At most {settings.MAX_IMAGES_PER_AD_SPACE} images are allowed")
        ad_space.images = [
            {"imageId": str(img.get("imageId") or ""), "caption": img.get("caption") or ""}
            for img in images
            if isinstance(img, dict)
        ]

        session = self.SessionFactory()
        try:
            session.add(ad_space)
            session.commit()
            out = ad_space_to_dict(ad_space)
        finally:
            session.close()

        self.invalidate_available()
        return out

    def list_for_owner(self, owner_id: str) -> list[dict]:
        session = self.SessionFactory()
        try:
            rows = (
                session.query(AdSpace)
                .filter(AdSpace.owner_id == str(owner_id))
                .order_by(AdSpace.created_at.desc())
                .all()
            )
            return [ad_space_to_dict(r) for r in rows]
        finally:
            session.close()

    def list_available(self) -> list[dict]:
        cached = self.cache.get(settings.AVAILABLE_CACHE_KEY)
        if cached:
            return json.loads(cached)

        session = self.SessionFactory()
        try:
            rows = (
                session.query(AdSpace)
                .filter(AdSpace.status == "Available")
                .order_by(AdSpace.created_at.desc())
                .all()
            )
            out = [ad_space_to_dict(r) for r in rows]
        finally:
            session.close()

        self.cache.set(settings.AVAILABLE_CACHE_KEY, json.dumps(out), self.cache_ttl)
        return out

    def get(self, ad_space_id: str) -> dict:
        session = self.SessionFactory()
        try:
            ad_space = session.get(AdSpace, str(ad_space_id))
            if ad_space is None:
                logger.info(f"AdSpace not found for ID: {ad_space_id}")
                raise NotFound("AdSpace not found")
            owner = session.get(User, ad_space.owner_id)
            history = (
                session.query(Booking)
                .filter(Booking.ad_space_id == ad_space.id)
                .order_by(Booking.start_date.asc())
                .all()
            )
            return ad_space_to_dict(ad_space, owner=owner, history=history)
        finally:
            session.close()

    def update(self, owner_id: str, ad_space_id: str, fields: dict,
               uploads: list[tuple[str, bytes]] | None = None,
               captions: list[str] | None = None) -> dict:
        session = self.SessionFactory()
        old_image_ids: list[str] = []
        new_image_ids: list[str] = []
        try:
            ad_space = self._load_owned(session, owner_id, ad_space_id)
            self._apply_fields(ad_space, fields, partial=True)

            if uploads:
                # new uploads replace the whole gallery
                old_image_ids = [img.get("imageId") for img in (ad_space.images or [])]
                ad_space.images = self._store_images(uploads, captions or [])
                new_image_ids = [img["imageId"] for img in ad_space.images]

            session.commit()
            out = ad_space_to_dict(ad_space)
        except Exception:
            # the row still points at the old gallery
            self.media.delete_many(new_image_ids)
            raise
        finally:
            session.close()

        if old_image_ids:
            self.media.delete_many(old_image_ids)
        self.invalidate_available()
        return out

    def delete(self, owner_id: str, ad_space_id: str) -> dict:
        session = self.SessionFactory()
        try:
            ad_space = self._load_owned(session, owner_id, ad_space_id)
            image_ids = [img.get("imageId") for img in (ad_space.images or [])]
            session.query(Booking).filter(Booking.ad_space_id == ad_space.id).delete()
            session.query(BookingRequest).filter(BookingRequest.ad_space_id == ad_space.id).delete()
            session.delete(ad_space)
            session.commit()
            logger.info(f"AdSpace {ad_space_id} deleted by {owner_id}")
        finally:
            session.close()

        self.media.delete_many(image_ids)
        self.invalidate_available()
        return {"message": "AdSpace deleted"}

    # -----------------------
    # Analytics
    # -----------------------

    def analytics(self, owner_id: str) -> dict:
        session = self.SessionFactory()
        try:
            ad_spaces = session.query(AdSpace).filter(AdSpace.owner_id == str(owner_id)).all()
            ids = [a.id for a in ad_spaces]
            history = (
                session.query(Booking).filter(Booking.ad_space_id.in_(ids)).all() if ids else []
            )
        finally:
            session.close()

        total = len(ad_spaces)
        available = sum(1 for a in ad_spaces if a.status == "Available")
        requested = sum(1 for a in ad_spaces if a.status == "Requested")
        booked = sum(1 for a in ad_spaces if a.status == "Booked")

        # revenue: monthly rate of each booking, by the month it starts
        rate_by_space = {a.id: a.base_monthly_rate for a in ad_spaces}
        revenue_by_month: dict[str, float] = defaultdict(float)
        for a in ad_spaces:
            if a.status == "Booked" and a.booking_start_date is not None:
                revenue_by_month[a.booking_start_date.strftime("%Y-%m")] += a.base_monthly_rate
        for b in history:
            if b.status == "Completed":
                revenue_by_month[b.start_date.strftime("%Y-%m")] += rate_by_space.get(b.ad_space_id, 0.0)

        footfall_by_month: dict[str, list[int]] = defaultdict(list)
        for a in ad_spaces:
            footfall_by_month[a.availability_start.strftime("%Y-%m")].append(a.footfall)

        return {
            "overview": {"total": total, "available": available, "requested": requested, "approved": booked},
            "revenue": [
                {"month": month, "revenue": revenue_by_month[month]}
                for month in sorted(revenue_by_month)
            ],
            "footfall": [
                {"month": month, "avgFootfall": round(sum(values) / len(values))}
                for month, values in sorted(footfall_by_month.items())
            ],
            "bookingRate": [
                {"name": "Approved", "value": booked},
                {"name": "Requested", "value": requested},
                {"name": "Available", "value": available},
            ],
        }

    def basic_analytics(self, owner_id: str) -> dict:
        overview = self.analytics(owner_id)["overview"]
        return {
            "total": overview["total"],
            "available": overview["available"],
            "requested": overview["requested"],
        }
