# marketplace/serializers.py
"""
Entity -> JSON dict conversion.

The frontend was written against document-style payloads, so the wire shape
keeps camelCase keys and `_id` identifiers. Referenced users / ad spaces are
embedded as small dicts when the caller passes them in ("populated"), and
left as bare ids otherwise.
"""
from datetime import datetime

from marketplace.entities import (
    AdSpace,
    Booking,
    BookingRequest,
    ChatMessage,
    Conversation,
    User,
)


def iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat() + "Z"


def user_to_dict(user: User) -> dict:
    return {
        "_id": user.id,
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "verified": user.verified,
        "profile": dict(user.profile or {}),
        "profileCompleted": user.profile_completed,
    }


def user_ref(user: User | None, *fields: str) -> dict | None:
    """Populate-style reference: `_id` plus the requested public fields."""
    if user is None:
        return None
    out = {"_id": user.id}
    for field in fields:
        if field == "businessName":
            out["businessName"] = (user.profile or {}).get("businessName")
        else:
            out[field] = getattr(user, field)
    return out


def booking_to_dict(booking: Booking) -> dict:
    return {
        "_id": booking.id,
        "requestId": booking.request_id,
        "startDate": iso(booking.start_date),
        "endDate": iso(booking.end_date),
        "duration": {"type": booking.duration_type, "value": booking.duration_value},
        "status": booking.status,
    }


def ad_space_to_dict(ad_space: AdSpace, owner: User | None = None,
                     history: list[Booking] | None = None) -> dict:
    current_booking = None
    if ad_space.booking_request_id:
        current_booking = {
            "requestId": ad_space.booking_request_id,
            "startDate": iso(ad_space.booking_start_date),
            "endDate": iso(ad_space.booking_end_date),
            "duration": {
                "type": ad_space.booking_duration_type,
                "value": ad_space.booking_duration_value,
            },
        }

    return {
        "_id": ad_space.id,
        "owner": user_ref(owner, "name") if owner is not None else ad_space.owner_id,
        "title": ad_space.title,
        "description": ad_space.description,
        "images": [dict(img) for img in (ad_space.images or [])],
        "address": ad_space.address,
        "footfall": ad_space.footfall,
        "footfallType": ad_space.footfall_type,
        "pricing": {"baseMonthlyRate": ad_space.base_monthly_rate},
        "availability": {
            "startDate": iso(ad_space.availability_start),
            "endDate": iso(ad_space.availability_end),
        },
        "status": ad_space.status,
        "booking": current_booking,
        "bookings": [booking_to_dict(b) for b in (history or [])],
        "terms": ad_space.terms or "",
        "createdAt": iso(ad_space.created_at),
        "updatedAt": iso(ad_space.updated_at),
    }


def request_to_dict(request: BookingRequest, sender: User | None = None,
                    owner: User | None = None, ad_space: AdSpace | None = None) -> dict:
    return {
        "_id": request.id,
        "sender": user_ref(sender, "name", "businessName") if sender is not None else request.sender_id,
        "owner": user_ref(owner, "name", "businessName") if owner is not None else request.owner_id,
        "adSpace": (
            {"_id": ad_space.id, "title": ad_space.title, "address": ad_space.address}
            if ad_space is not None else request.ad_space_id
        ),
        "duration": {"type": request.duration_type, "value": request.duration_value},
        "requirements": request.requirements,
        "status": request.status,
        "startDate": iso(request.start_date),
        "endDate": iso(request.end_date),
        "rejectedAt": iso(request.rejected_at),
        "createdAt": iso(request.created_at),
        "updatedAt": iso(request.updated_at),
    }


def message_to_dict(message: ChatMessage, sender: User | None = None,
                    recipient: User | None = None) -> dict:
    return {
        "_id": message.id,
        "conversationId": message.conversation_id,
        "sender": user_ref(sender, "name") if sender is not None else message.sender_id,
        "recipient": user_ref(recipient, "name") if recipient is not None else message.recipient_id,
        "type": message.type,
        "content": message.content,
        "attachment": dict(message.attachment) if message.attachment else None,
        "timestamp": iso(message.timestamp),
        "read": message.read,
        "deleted": message.deleted,
    }


def conversation_to_dict(conversation: Conversation) -> dict:
    return {
        "_id": conversation.id,
        "participants": conversation.participants,
        "adSpaces": list(conversation.ad_space_ids or []),
        "createdAt": iso(conversation.created_at),
        "lastMessageAt": iso(conversation.last_message_at),
    }
