# marketplace/chat_service.py
import math
import logging
from typing import Callable

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace import settings
from marketplace.base_utils import BaseUtils
from marketplace.entities import (
    ATTACHMENT_TYPES,
    AdSpace,
    BookingRequest,
    ChatMessage,
    Conversation,
    User,
    utcnow,
)
from marketplace.errors import BadRequest, Forbidden, NotFound
from marketplace.mailer import Mailer, new_message_email
from marketplace.serializers import conversation_to_dict, message_to_dict, user_ref

logger = logging.getLogger("adspace_backend")

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


class ChatService(BaseUtils):
    def __init__(self, session_factory: Callable[[], Session], mailer: Mailer,
                 frontend_url: str = settings.FRONTEND_URL):
        self.SessionFactory = session_factory
        self.mailer = mailer
        self.frontend_url = frontend_url

    # -----------------------
    # Conversation helpers
    # -----------------------

    def _lookup_conversation(self, session: Session, u1: str, u2: str) -> Conversation | None:
        return (
            session.query(Conversation)
            .filter(Conversation.user1_id == u1, Conversation.user2_id == u2)
            .first()
        )

    def _attach_ad_space(self, conversation: Conversation, ad_space_id: str | None) -> None:
        if ad_space_id and ad_space_id not in (conversation.ad_space_ids or []):
            # reassign so the JSON column is flagged dirty
            conversation.ad_space_ids = list(conversation.ad_space_ids or []) + [ad_space_id]

    def _find_or_create_conversation(self, session: Session, user_a: str, user_b: str,
                                     ad_space_id: str | None = None) -> tuple[Conversation, bool]:
        if user_a == user_b:
            raise BadRequest("Cannot create conversation with self")

        u1, u2 = sorted((str(user_a), str(user_b)))
        conversation = self._lookup_conversation(session, u1, u2)
        if conversation is not None:
            self._attach_ad_space(conversation, ad_space_id)
            return conversation, False

        conversation = Conversation(user1_id=u1, user2_id=u2, ad_space_ids=[ad_space_id] if ad_space_id else [])
        session.add(conversation)
        try:
            session.flush()
        except IntegrityError:
            # created concurrently by the other participant
            session.rollback()
            conversation = self._lookup_conversation(session, u1, u2)
            self._attach_ad_space(conversation, ad_space_id)
            return conversation, False
        return conversation, True

    def _participant_conversation(self, session: Session, user_id: str, conversation_id: str) -> Conversation:
        conversation = session.get(Conversation, str(conversation_id))
        if conversation is None or user_id not in conversation.participants:
            raise Forbidden("Access denied")
        return conversation

    def assert_participant(self, user_id: str, conversation_id: str) -> None:
        session = self.SessionFactory()
        try:
            self._participant_conversation(session, user_id, conversation_id)
        finally:
            session.close()

    def _populated_messages(self, session: Session, messages: list[ChatMessage]) -> list[dict]:
        user_ids = {m.sender_id for m in messages} | {m.recipient_id for m in messages}
        users = {}
        if user_ids:
            users = {u.id: u for u in session.query(User).filter(User.id.in_(user_ids)).all()}
        return [
            message_to_dict(m, sender=users.get(m.sender_id), recipient=users.get(m.recipient_id))
            for m in messages
        ]

    # -----------------------
    # Handlers
    # -----------------------

    def conversation_for_request(self, user: User, request_id: str) -> dict:
        session = self.SessionFactory()
        try:
            request = session.get(BookingRequest, str(request_id))
            if request is None:
                logger.info(f"Request {request_id} not found")
                raise NotFound("Request not found")
            if user.id not in (request.sender_id, request.owner_id):
                logger.info(f"Unauthorized access by user {user.id} for request {request_id}")
                raise Forbidden("Unauthorized: You are not a participant")

            ad_space = session.get(AdSpace, request.ad_space_id)
            conversation, created = self._find_or_create_conversation(
                session, request.sender_id, request.owner_id, ad_space.id if ad_space else None
            )
            if created and ad_space is not None:
                session.add(
                    ChatMessage(
                        conversation_id=conversation.id,
                        sender_id=request.sender_id,
                        recipient_id=request.owner_id,
                        type="system",
                        content=f"This chat is regarding AdSpace: {ad_space.title}",
                    )
                )
                conversation.last_message_at = utcnow()
            session.commit()
            if created:
                logger.info(f"New conversation {conversation.id} for request {request_id}")
            return {"conversationId": conversation.id}
        finally:
            session.close()

    def list_conversations(self, user: User) -> list[dict]:
        session = self.SessionFactory()
        try:
            conversations = (
                session.query(Conversation)
                .filter((Conversation.user1_id == user.id) | (Conversation.user2_id == user.id))
                .order_by(Conversation.last_message_at.desc(), Conversation.created_at.desc())
                .all()
            )
            items = []
            for conversation in conversations:
                other = session.get(User, conversation.other_participant(user.id))
                last = (
                    session.query(ChatMessage)
                    .filter(ChatMessage.conversation_id == conversation.id)
                    .order_by(ChatMessage.timestamp.desc())
                    .first()
                )
                unread = self._unread_query(session, conversation.id, user.id).count()
                ad_spaces = []
                if conversation.ad_space_ids:
                    ad_spaces = [
                        {"_id": a.id, "title": a.title}
                        for a in session.query(AdSpace).filter(AdSpace.id.in_(conversation.ad_space_ids)).all()
                    ]
                item = conversation_to_dict(conversation)
                item.update({
                    "otherParticipant": user_ref(other, "name"),
                    "adSpaces": ad_spaces,
                    "lastMessage": message_to_dict(last) if last is not None else None,
                    "unreadCount": unread,
                })
                items.append(item)
            return items
        finally:
            session.close()

    def messages_page(self, user: User, conversation_id: str, page=1, limit=DEFAULT_PAGE_SIZE) -> dict:
        page = self._page_number(page, 1)
        limit = min(self._page_number(limit, DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)

        session = self.SessionFactory()
        try:
            self._participant_conversation(session, user.id, conversation_id)
            base = session.query(ChatMessage).filter(ChatMessage.conversation_id == str(conversation_id))
            total = base.count()
            # newest page first, each page returned oldest-first
            rows = (
                base.order_by(ChatMessage.timestamp.desc(), ChatMessage.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            rows.reverse()
            return {
                "messages": self._populated_messages(session, rows),
                "totalPages": math.ceil(total / limit),
                "currentPage": page,
            }
        finally:
            session.close()

    def _page_number(self, value, default: int) -> int:
        try:
            number = int(value)
        except (TypeError, ValueError):
            return default
        return number if number > 0 else default

    def search(self, user: User, conversation_id: str, query: str | None) -> list[dict]:
        session = self.SessionFactory()
        try:
            self._participant_conversation(session, user.id, conversation_id)
            needle = (query or "").lower()
            rows = (
                session.query(ChatMessage)
                .filter(
                    ChatMessage.conversation_id == str(conversation_id),
                    ChatMessage.deleted.is_(False),
                    func.lower(func.coalesce(ChatMessage.content, "")).contains(needle, autoescape=True),
                )
                .order_by(ChatMessage.timestamp.asc())
                .all()
            )
            return self._populated_messages(session, rows)
        finally:
            session.close()

    def _validate_attachment(self, attachment) -> dict | None:
        if not attachment:
            return None
        if not isinstance(attachment, dict) or not attachment.get("fileId"):
            raise BadRequest("Invalid attachment")
        kind = attachment.get("type") or "file"
        self._require_choice(kind, ATTACHMENT_TYPES, "attachment.type")
        return {
            "type": kind,
            "fileId": str(attachment["fileId"]),
            "filename": attachment.get("filename") or "",
        }

    def send_message(self, user: User, conversation_id: str, content: str | None,
                     attachment: dict | None = None) -> dict:
        content = self._coerce_field_to_str(content)
        attachment = self._validate_attachment(attachment)
        if not content and attachment is None:
            raise BadRequest("Message content or attachment is required")
        if len(content) > settings.MAX_MESSAGE_LENGTH:
            raise BadRequest(f"Message is too long (max {settings.MAX_MESSAGE_LENGTH} characters)")

        session = self.SessionFactory()
        try:
            conversation = self._participant_conversation(session, user.id, conversation_id)
            recipient = session.get(User, conversation.other_participant(user.id))

            message = ChatMessage(
                conversation_id=conversation.id,
                sender_id=user.id,
                recipient_id=conversation.other_participant(user.id),
                type="user",
                content=content or None,
                attachment=attachment,
                timestamp=utcnow(),
            )
            session.add(message)
            conversation.last_message_at = message.timestamp
            session.commit()
            out = message_to_dict(message, sender=user, recipient=recipient)
        finally:
            session.close()

        if recipient is not None:
            subject, body = new_message_email(self.frontend_url, user.name, content, conversation.id)
            self.mailer.send(recipient.email, subject, body)
        return out

    def delete_message(self, user: User, message_id: str) -> dict:
        session = self.SessionFactory()
        try:
            message = session.get(ChatMessage, str(message_id))
            if message is None or message.sender_id != user.id:
                raise Forbidden("Access denied")
            message.deleted = True
            session.commit()
            return {"_id": message.id, "conversationId": message.conversation_id}
        finally:
            session.close()

    # -----------------------
    # Read tracking
    # -----------------------

    def _unread_query(self, session: Session, conversation_id: str, user_id: str):
        return session.query(ChatMessage).filter(
            ChatMessage.conversation_id == conversation_id,
            ChatMessage.read.is_(False),
            ChatMessage.sender_id != user_id,
            ChatMessage.type == "user",
        )

    def unread_for_conversation(self, user: User, conversation_id: str) -> dict:
        session = self.SessionFactory()
        try:
            conversation = session.get(Conversation, str(conversation_id))
            if conversation is None:
                raise NotFound("Conversation not found")
            if user.id not in conversation.participants:
                raise Forbidden("Access denied")
            return {"unreadCount": self._unread_query(session, conversation.id, user.id).count()}
        finally:
            session.close()

    def total_unread(self, user: User) -> dict:
        session = self.SessionFactory()
        try:
            count = (
                session.query(ChatMessage)
                .join(Conversation, ChatMessage.conversation_id == Conversation.id)
                .filter(
                    (Conversation.user1_id == user.id) | (Conversation.user2_id == user.id),
                    ChatMessage.read.is_(False),
                    ChatMessage.sender_id != user.id,
                    ChatMessage.type == "user",
                )
                .count()
            )
            return {"unreadCount": count}
        finally:
            session.close()

    def mark_read(self, user: User, conversation_id: str) -> dict:
        session = self.SessionFactory()
        try:
            self._participant_conversation(session, user.id, conversation_id)
            updated = (
                session.query(ChatMessage)
                .filter(
                    ChatMessage.conversation_id == str(conversation_id),
                    ChatMessage.recipient_id == user.id,
                    ChatMessage.read.is_(False),
                )
                .update({ChatMessage.read: True}, synchronize_session=False)
            )
            session.commit()
            return {"message": "Messages marked as read", "updated": updated}
        finally:
            session.close()
