# marketplace/housekeeping.py
import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from marketplace import settings
from marketplace.entities import (
    AdSpace,
    ArchivedChatMessage,
    Booking,
    BookingRequest,
    ChatMessage,
    utcnow,
)

logger = logging.getLogger("adspace_worker")

DURATION_DAYS = {"days": 1, "weeks": 7, "months": 30}


def duration_to_timedelta(duration_type: str | None, value: int | None) -> timedelta:
    return timedelta(days=DURATION_DAYS.get(duration_type or "days", 1) * (value or 0))


def expire_bookings(session_factory: Callable[[], Session], now: datetime | None = None) -> int:
    """
    Moves every finished booking into the history table and puts the ad
    space back on the market. Returns how many spaces were released.
    """
    now = now or utcnow()
    session = session_factory()
    try:
        booked = (
            session.query(AdSpace)
            .filter(
                AdSpace.status == "Booked",
                AdSpace.booking_end_date.is_not(None),
                AdSpace.booking_end_date < now,
            )
            .all()
        )
        for ad_space in booked:
            start = ad_space.booking_start_date or (
                ad_space.booking_end_date
                - duration_to_timedelta(ad_space.booking_duration_type, ad_space.booking_duration_value)
            )
            session.add(
                Booking(
                    ad_space_id=ad_space.id,
                    request_id=ad_space.booking_request_id or "",
                    start_date=start,
                    end_date=ad_space.booking_end_date,
                    duration_type=ad_space.booking_duration_type or "days",
                    duration_value=ad_space.booking_duration_value or 0,
                    status="Completed",
                )
            )
            ad_space.status = "Available"
            ad_space.booking_request_id = None
            ad_space.booking_start_date = None
            ad_space.booking_end_date = None
            ad_space.booking_duration_type = None
            ad_space.booking_duration_value = None
            logger.info(f"AdSpace {ad_space.id} booking expired, reverted to Available")
        session.commit()
        return len(booked)
    finally:
        session.close()


def purge_rejected_requests(session_factory: Callable[[], Session], now: datetime | None = None,
                            retention_days: int = settings.REJECTED_REQUEST_RETENTION_DAYS) -> int:
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    session = session_factory()
    try:
        deleted = (
            session.query(BookingRequest)
            .filter(
                BookingRequest.status == "Rejected",
                BookingRequest.rejected_at.is_not(None),
                BookingRequest.rejected_at <= cutoff,
            )
            .delete(synchronize_session=False)
        )
        session.commit()
        if deleted:
            logger.info(f"Deleted {deleted} rejected request(s) older than {retention_days} days")
        return deleted
    finally:
        session.close()


ARCHIVE_COLUMNS = (
    "id", "conversation_id", "sender_id", "recipient_id", "type", "content",
    "attachment", "timestamp", "read", "deleted",
)


def archive_old_messages(session_factory: Callable[[], Session], now: datetime | None = None,
                         age_days: int = settings.MESSAGE_ARCHIVE_AGE_DAYS,
                         batch_size: int = 500) -> int:
    """Copies chat messages older than age_days into the archive table, then deletes them."""
    cutoff = (now or utcnow()) - timedelta(days=age_days)
    archived = 0
    session = session_factory()
    try:
        while True:
            batch = (
                session.query(ChatMessage)
                .filter(ChatMessage.timestamp < cutoff)
                .order_by(ChatMessage.timestamp.asc())
                .limit(batch_size)
                .all()
            )
            if not batch:
                break
            for message in batch:
                session.add(ArchivedChatMessage(**{c: getattr(message, c) for c in ARCHIVE_COLUMNS}))
                session.delete(message)
            session.commit()
            archived += len(batch)
    finally:
        session.close()

    if archived:
        logger.info(f"Archived and deleted {archived} messages.")
    else:
        logger.info("No messages to archive.")
    return archived


def run_all(session_factory: Callable[[], Session], on_listing_change: Callable[[], None] | None = None) -> dict:
    released = expire_bookings(session_factory)
    if released and on_listing_change is not None:
        on_listing_change()
    return {
        "expired_bookings": released,
        "purged_requests": purge_rejected_requests(session_factory),
        "archived_messages": archive_old_messages(session_factory),
    }
