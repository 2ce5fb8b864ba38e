# marketplace/request_service.py
import logging
from typing import Callable

from sqlalchemy.orm import Session

from marketplace.base_utils import BaseUtils
from marketplace.entities import (
    DURATION_TYPES,
    AdSpace,
    BookingRequest,
    User,
    utcnow,
)
from marketplace.errors import BadRequest, Forbidden, NotFound
from marketplace.mailer import Mailer, new_request_email, request_status_email
from marketplace.serializers import request_to_dict

logger = logging.getLogger("adspace_backend")


class RequestService(BaseUtils):
    """
    Booking requests and the ad-space status they drive:

        Available --send--> Requested --approve--> Booked --expiry--> Available
                                      --reject (no other pending)--> Available
    """

    def __init__(self, session_factory: Callable[[], Session], mailer: Mailer,
                 on_listing_change: Callable[[], None] | None = None):
        self.SessionFactory = session_factory
        self.mailer = mailer
        self.on_listing_change = on_listing_change or (lambda: None)

    def _populate(self, session: Session, request: BookingRequest) -> dict:
        return request_to_dict(
            request,
            sender=session.get(User, request.sender_id),
            owner=session.get(User, request.owner_id),
            ad_space=session.get(AdSpace, request.ad_space_id),
        )

    # -----------------------
    # Handlers
    # -----------------------

    def send(self, advertiser: User, ad_space_id: str, duration: dict | None,
             requirements: str | None = None) -> dict:
        duration = duration or {}
        duration_type = self._require_choice(duration.get("type"), DURATION_TYPES, "duration.type")
        duration_value = self._parse_number(duration.get("value"), "duration.value", cast=int)
        if duration_value < 1:
            raise BadRequest("duration.value must be at least 1")

        session = self.SessionFactory()
        try:
            ad_space = session.get(AdSpace, str(ad_space_id))
            if ad_space is None:
                raise NotFound("AdSpace not found")
            if ad_space.status == "Booked":
                raise BadRequest("This AdSpace is already booked. Please wait until it becomes available.")
            if ad_space.owner_id == advertiser.id:
                raise BadRequest("You cannot request your own AdSpace")

            existing = (
                session.query(BookingRequest)
                .filter(
                    BookingRequest.ad_space_id == ad_space.id,
                    BookingRequest.sender_id == advertiser.id,
                    BookingRequest.status == "Pending",
                )
                .first()
            )
            if existing is not None:
                raise BadRequest("You already have a pending request for this AdSpace")

            request = BookingRequest(
                sender_id=advertiser.id,
                owner_id=ad_space.owner_id,
                ad_space_id=ad_space.id,
                duration_type=duration_type,
                duration_value=duration_value,
                requirements=self._coerce_field_to_str(requirements) or None,
                status="Pending",
            )
            session.add(request)
            ad_space.status = "Requested"
            session.commit()
            logger.info(f"Request {request.id} sent for AdSpace {ad_space.id} by {advertiser.id}")

            owner = session.get(User, ad_space.owner_id)
            out = self._populate(session, request)
            ad_title = ad_space.title
        finally:
            session.close()

        self.on_listing_change()
        if owner is not None:
            subject, body = new_request_email(ad_title, advertiser.name)
            self.mailer.send(owner.email, subject, body)
        return out

    def list_mine(self, user: User) -> list[dict]:
        session = self.SessionFactory()
        try:
            query = session.query(BookingRequest)
            if user.role == "owner":
                query = query.filter(BookingRequest.owner_id == user.id)
            else:
                query = query.filter(BookingRequest.sender_id == user.id)
            rows = query.order_by(BookingRequest.created_at.desc()).all()
            return [self._populate(session, r) for r in rows]
        finally:
            session.close()

    def update_status(self, owner: User, request_id: str, status: str,
                      start_date=None, end_date=None) -> dict:
        self._require_choice(status, ("Approved", "Rejected"), "status")

        notify: list[tuple[str, str]] = []  # (email, status)
        session = self.SessionFactory()
        try:
            request = session.get(BookingRequest, str(request_id))
            if request is None or request.owner_id != owner.id:
                raise Forbidden("Not authorized")
            if request.status != "Pending":
                raise BadRequest(f"Request already {request.status.lower()}")

            ad_space = session.get(AdSpace, request.ad_space_id)
            if ad_space is None:
                raise NotFound("AdSpace not found")

            # every check runs before the first write
            if status == "Approved":
                if not start_date or not end_date:
                    raise BadRequest(
                        "Start date and end date are required for approval. "
                        "Please agree on dates with the requester via chat."
                    )
                booking_start = self._parse_datetime(start_date, "startDate")
                booking_end = self._parse_datetime(end_date, "endDate")
                if booking_end <= booking_start:
                    raise BadRequest("End date must be after start date")
                if booking_start.date() < utcnow().date():
                    raise BadRequest("Start date cannot be in the past")
                if ad_space.status == "Booked":
                    raise BadRequest("This AdSpace is already booked")

                request.status = "Approved"
                request.start_date = booking_start
                request.end_date = booking_end

                ad_space.status = "Booked"
                ad_space.booking_request_id = request.id
                ad_space.booking_start_date = booking_start
                ad_space.booking_end_date = booking_end
                ad_space.booking_duration_type = request.duration_type
                ad_space.booking_duration_value = request.duration_value

                competing = (
                    session.query(BookingRequest)
                    .filter(
                        BookingRequest.ad_space_id == ad_space.id,
                        BookingRequest.id != request.id,
                        BookingRequest.status == "Pending",
                    )
                    .all()
                )
                for other in competing:
                    other.status = "Rejected"
                    other.rejected_at = utcnow()
                    other_sender = session.get(User, other.sender_id)
                    if other_sender is not None:
                        notify.append((other_sender.email, "Rejected"))
                if competing:
                    logger.info(f"Auto-rejected {len(competing)} competing request(s) for AdSpace {ad_space.id}")
            else:
                request.status = "Rejected"
                request.rejected_at = utcnow()
                if ad_space.status != "Booked":
                    still_pending = (
                        session.query(BookingRequest)
                        .filter(
                            BookingRequest.ad_space_id == ad_space.id,
                            BookingRequest.id != request.id,
                            BookingRequest.status == "Pending",
                        )
                        .count()
                    )
                    ad_space.status = "Requested" if still_pending else "Available"

            session.commit()
            logger.info(f"Request {request.id} -> {status}; AdSpace {ad_space.id} -> {ad_space.status}")

            sender = session.get(User, request.sender_id)
            if sender is not None:
                notify.insert(0, (sender.email, status))
            out = self._populate(session, request)
            ad_title = ad_space.title
        finally:
            session.close()

        self.on_listing_change()
        for email, new_status in notify:
            subject, body = request_status_email(ad_title, new_status)
            self.mailer.send(email, subject, body)
        return out
