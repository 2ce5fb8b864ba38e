# marketplace/api_chat.py
import asyncio
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field

from marketplace.auth import authenticate_token, extract_token, get_current_user
from marketplace.entities import User
from marketplace.errors import BadRequest, MarketplaceError

logger = logging.getLogger("adspace_backend")

router = APIRouter(prefix="/api/chat", tags=["chat"])


class SendMessageBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(alias="conversationId")
    content: Optional[str] = None
    attachment: Optional[dict[str, Any]] = None


# -----------------------
# REST
# -----------------------

@router.get("/conversations")
def list_conversations(request: Request, user: User = Depends(get_current_user)):
    return request.app.state.chat.list_conversations(user)


@router.get("/conversation/request/{request_id}")
def conversation_for_request(request_id: str, request: Request, user: User = Depends(get_current_user)):
    return request.app.state.chat.conversation_for_request(user, request_id)


@router.get("/messages/conversation/{conversation_id}")
def conversation_messages(conversation_id: str, request: Request, page: Optional[str] = None,
                          limit: Optional[str] = None, user: User = Depends(get_current_user)):
    return request.app.state.chat.messages_page(user, conversation_id, page, limit)


@router.get("/messages/conversation/{conversation_id}/search")
def search_messages(conversation_id: str, request: Request, q: str = "",
                    user: User = Depends(get_current_user)):
    return request.app.state.chat.search(user, conversation_id, q)


@router.post("/send", status_code=201)
async def send_message(body: SendMessageBody, request: Request, user: User = Depends(get_current_user)):
    state = request.app.state
    message = await asyncio.to_thread(
        state.chat.send_message, user, body.conversation_id, body.content, body.attachment
    )
    await state.hub.emit(body.conversation_id, "message", message)
    return message


@router.post("/upload-attachment")
def upload_attachment(request: Request, attachment: UploadFile = File(...),
                      user: User = Depends(get_current_user)):
    data = attachment.file.read()
    return request.app.state.media.save_attachment(attachment.filename, data, attachment.content_type)


@router.delete("/message/{message_id}")
async def delete_message(message_id: str, request: Request, user: User = Depends(get_current_user)):
    state = request.app.state
    deleted = await asyncio.to_thread(state.chat.delete_message, user, message_id)
    await state.hub.emit(deleted["conversationId"], "messageDeleted", deleted["_id"])
    return {"message": "Message deleted"}


@router.get("/unread")
def total_unread(request: Request, user: User = Depends(get_current_user)):
    return request.app.state.chat.total_unread(user)


@router.get("/unread/{conversation_id}")
def conversation_unread(conversation_id: str, request: Request, user: User = Depends(get_current_user)):
    return request.app.state.chat.unread_for_conversation(user, conversation_id)


@router.post("/mark-read/{conversation_id}")
def mark_read(conversation_id: str, request: Request, user: User = Depends(get_current_user)):
    return request.app.state.chat.mark_read(user, conversation_id)


# -----------------------
# Realtime
# -----------------------

@router.websocket("/ws")
async def chat_socket(websocket: WebSocket):
    """
    Client -> server: {"event": "joinRoom" | "leaveRoom", "room": <conversationId>}
                      {"event": "sendMessage", "conversationId", "content", "attachment"?}
    Server -> client: {"event": "joined" | "left" | "message" | "messageDeleted" | "error", "data": ...}
    """
    state = websocket.app.state
    await websocket.accept()

    token = extract_token(websocket.cookies, websocket.headers, websocket.query_params)
    try:
        user = await asyncio.to_thread(authenticate_token, token, state.tokens, state.users.get_user)
    except MarketplaceError as e:
        await websocket.send_json({"event": "error", "data": {"message": e.message}})
        await websocket.close(code=4401)
        return

    logger.info("Chat socket connected for user %s", user.id)
    try:
        while True:
            try:
                payload = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"event": "error", "data": {"message": "Invalid JSON"}})
                continue

            try:
                await _handle_socket_event(state, websocket, user, payload)
            except MarketplaceError as e:
                await websocket.send_json({"event": "error", "data": {"message": e.message}})
    except WebSocketDisconnect:
        logger.info("Chat socket disconnected for user %s", user.id)
    finally:
        state.hub.disconnect(websocket)


async def _handle_socket_event(state, websocket: WebSocket, user: User, payload) -> None:
    if not isinstance(payload, dict):
        raise BadRequest("Event must be a JSON object")
    event = payload.get("event")

    if event == "joinRoom":
        room = str(payload.get("room") or "")
        await asyncio.to_thread(state.chat.assert_participant, user.id, room)
        state.hub.join(room, websocket)
        await websocket.send_json({"event": "joined", "data": {"room": room}})

    elif event == "leaveRoom":
        room = str(payload.get("room") or "")
        state.hub.leave(room, websocket)
        await websocket.send_json({"event": "left", "data": {"room": room}})

    elif event == "sendMessage":
        conversation_id = str(payload.get("conversationId") or payload.get("room") or "")
        message = await asyncio.to_thread(
            state.chat.send_message,
            user,
            conversation_id,
            payload.get("content"),
            payload.get("attachment"),
        )
        await state.hub.emit(conversation_id, "message", message)

    else:
        raise BadRequest(f"Unknown event: {event}")
