# marketplace/entities.py
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy.orm import Mapped, declarative_base, mapped_column
from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
    Index,
    JSON,
)

from typing import TypeAlias
UUID: TypeAlias = str
Base = declarative_base()


def utcnow() -> datetime:
    # naive UTC everywhere, sqlite drops tzinfo anyway
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid() -> str:
    return str(uuid4())


ROLES = ("owner", "advertiser", "")
FOOTFALL_TYPES = ("Daily", "Weekly", "Monthly")
AD_SPACE_STATUSES = ("Available", "Requested", "Booked", "Rejected")
DURATION_TYPES = ("days", "weeks", "months")
REQUEST_STATUSES = ("Pending", "Approved", "Rejected")
BOOKING_STATUSES = ("Completed", "Cancelled")
MESSAGE_TYPES = ("user", "system")
ATTACHMENT_TYPES = ("image", "file")


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


class User(Base, TimestampMixin):
    __tablename__ = "user"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
    # empty for accounts created through Google sign-in
    password_hash: Mapped[str | None] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # {"phone": str, "location": str | None, "businessName": str | None}
    profile: Mapped[dict[str, object]] = mapped_column(
        JSON,
        nullable=False,
        default=lambda: {"phone": ""},
    )
    profile_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class VerificationToken(Base):
    __tablename__ = "verification_token"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    otp_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class AdSpace(Base, TimestampMixin):
    __tablename__ = "ad_space"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # [{"imageId": str, "caption": str}]
    images: Mapped[list[dict[str, object]]] = mapped_column(JSON, nullable=False, default=list)

    address: Mapped[str] = mapped_column(Text, nullable=False)
    footfall: Mapped[int] = mapped_column(Integer, nullable=False)
    footfall_type: Mapped[str] = mapped_column(String(10), nullable=False)
    base_monthly_rate: Mapped[float] = mapped_column(Float, nullable=False)

    availability_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    availability_end: Mapped[datetime | None] = mapped_column(DateTime)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Available")

    # current booking, all NULL unless status == "Booked"
    booking_request_id: Mapped[UUID | None] = mapped_column(String(36))
    booking_start_date: Mapped[datetime | None] = mapped_column(DateTime)
    booking_end_date: Mapped[datetime | None] = mapped_column(DateTime)
    booking_duration_type: Mapped[str | None] = mapped_column(String(10))
    booking_duration_value: Mapped[int | None] = mapped_column(Integer)

    terms: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        Index("ix_ad_space_owner_id", "owner_id"),
        Index("ix_ad_space_status", "status"),
    )


class Booking(Base):
    """Past bookings of an ad space."""
    __tablename__ = "booking"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_uuid)
    ad_space_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("ad_space.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    request_id: Mapped[UUID] = mapped_column(String(36), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    duration_type: Mapped[str] = mapped_column(String(10), nullable=False)
    duration_value: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Completed")


class BookingRequest(Base, TimestampMixin):
    __tablename__ = "booking_request"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_uuid)
    sender_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
    )
    owner_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
    )
    ad_space_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("ad_space.id", ondelete="CASCADE"),
        nullable=False,
    )
    duration_type: Mapped[str] = mapped_column(String(10), nullable=False)
    duration_value: Mapped[int] = mapped_column(Integer, nullable=False)
    requirements: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Pending")

    start_date: Mapped[datetime | None] = mapped_column(DateTime)
    end_date: Mapped[datetime | None] = mapped_column(DateTime)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime)

    __table_args__ = (
        Index("ix_booking_request_sender_id", "sender_id"),
        Index("ix_booking_request_owner_id", "owner_id"),
        Index("ix_booking_request_ad_space_status", "ad_space_id", "status"),
    )


class Conversation(Base):
    __tablename__ = "conversation"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_uuid)
    # participants, always stored sorted so the pair is unique
    user1_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
    )
    user2_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
    )
    ad_space_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime)

    __table_args__ = (
        UniqueConstraint("user1_id", "user2_id", name="uq_conversation_participants"),
    )

    @property
    def participants(self) -> list[str]:
        return [self.user1_id, self.user2_id]

    def other_participant(self, user_id: str) -> str:
        return self.user2_id if self.user1_id == user_id else self.user1_id


class _ChatMessageColumns:
    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_uuid)
    conversation_id: Mapped[UUID] = mapped_column(String(36), nullable=False, index=True)
    sender_id: Mapped[UUID] = mapped_column(String(36), nullable=False)
    recipient_id: Mapped[UUID] = mapped_column(String(36), nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False, default="user")
    content: Mapped[str | None] = mapped_column(Text)

    # {"type": "image" | "file", "fileId": str, "filename": str}
    attachment: Mapped[dict[str, object] | None] = mapped_column(JSON)

    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ChatMessage(_ChatMessageColumns, Base):
    __tablename__ = "chat_message"

    __table_args__ = (
        Index("ix_chat_message_sender_recipient", "sender_id", "recipient_id"),
    )


class ArchivedChatMessage(_ChatMessageColumns, Base):
    __tablename__ = "archived_chat_message"


class StoredFile(Base):
    __tablename__ = "stored_file"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_uuid)
    filename: Mapped[str] = mapped_column(String(300), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
