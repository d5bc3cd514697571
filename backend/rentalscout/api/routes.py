from typing import List, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field, ValidationError
import structlog

from rentalscout.agents.schemas import ChatResponse, ClientContext, HistoryMessage
from rentalscout.api.deps import Services, current_user, get_services, require_user
from rentalscout.core.config import settings
from rentalscout.core.errors import RentalScoutError
from rentalscout.db.schemas import detail_projection
from rentalscout.search.filters import SearchFilter

router = APIRouter()
logger = structlog.get_logger()


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=settings.MAX_MESSAGE_LENGTH)
    session_id: Optional[str] = Field(None, alias="sessionId")
    history: Optional[List[HistoryMessage]] = None
    context: Optional[ClientContext] = None

    model_config = ConfigDict(populate_by_name=True)


class SearchRequest(BaseModel):
    query: Optional[str] = Field(None, max_length=500)
    filters: SearchFilter = Field(default_factory=SearchFilter)
    limit: int = Field(10, ge=1, le=settings.MAX_SEARCH_LIMIT)


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    services: Services = Depends(get_services),
    user_id: Optional[str] = Depends(current_user),
):
    return await services.agent.chat(
        request.message,
        session_id=request.session_id,
        history=request.history,
        context=request.context,
        user_id=user_id,
    )


@router.get("/chat/{session_id}/history")
async def chat_history(session_id: str, services: Services = Depends(get_services)):
    conversation = await services.conversations.get(session_id)
    return {
        **conversation.summary(),
        "turns": [t.model_dump(mode="json") for t in conversation.turns],
    }


@router.delete("/chat/{session_id}")
async def delete_chat(session_id: str, services: Services = Depends(get_services)):
    return {"session_id": session_id, "deleted": await services.conversations.delete(session_id)}


@router.get("/users/me/conversations")
async def my_conversations(services: Services = Depends(get_services), user_id: str = Depends(require_user)):
    conversations = await services.conversations.sessions_for_user(user_id)
    return {"conversations": [c.summary() for c in conversations]}


@router.post("/search")
async def search(request: SearchRequest, services: Services = Depends(get_services)):
    outcome = await services.engine.search(request.query, request.filters, request.limit)
    return {
        "results": [r.card() for r in outcome.results],
        "count": len(outcome.results),
        "search_type": outcome.search_type,
        "degraded": outcome.degraded,
        "warnings": outcome.warnings,
    }


@router.get("/listings")
async def browse_listings(
    location: Optional[str] = None,
    property_type: Optional[str] = None,
    room_type: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    min_bedrooms: Optional[int] = Query(None, ge=0),
    sort: str = "rating",
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    services: Services = Depends(get_services),
):
    filters = SearchFilter(
        location=location,
        property_type=property_type,
        room_type=room_type,
        min_price=min_price,
        max_price=max_price,
        min_bedrooms=min_bedrooms,
    )
    listings, total = await services.repository.find_many(filters, sort=sort, skip=skip, limit=limit)
    return {
        "listings": [detail_projection(l) for l in listings],
        "total": total,
        "skip": skip,
        "limit": limit,
    }


@router.get("/listings/{listing_id}")
async def get_listing(listing_id: str, services: Services = Depends(get_services)):
    return await services.engine.get_details(listing_id)


@router.get("/users/me/saved")
async def saved_listings(services: Services = Depends(get_services), user_id: str = Depends(require_user)):
    return {"listing_ids": await services.profiles.saved_listings(user_id)}


@router.post("/users/me/saved/{listing_id}")
async def save_listing(listing_id: str, services: Services = Depends(get_services), user_id: str = Depends(require_user)):
    # Only existing listings can be saved
    listing = await services.engine.get_details(listing_id)
    return {"listing_ids": await services.profiles.save_listing(user_id, listing["id"])}


@router.delete("/users/me/saved/{listing_id}")
async def unsave_listing(listing_id: str, services: Services = Depends(get_services), user_id: str = Depends(require_user)):
    return {"removed": await services.profiles.remove_listing(user_id, listing_id)}


@router.websocket("/ws/{session_id}")
async def websocket_endpoint(websocket: WebSocket, session_id: str):
    await websocket.accept()
    logger.info(f"WebSocket connected: {session_id}")
    services: Services = websocket.app.state.services
    user_id = websocket.headers.get("x-user-id") or None

    try:
        while True:
            data = await websocket.receive_json()
            if data.get("type") != "message":
                continue

            try:
                context = ClientContext(**data["context"]) if data.get("context") else None
            except ValidationError as e:
                await websocket.send_json({"type": "error", "kind": "ValidationError", "message": str(e)})
                continue

            # Notify "thinking"
            await websocket.send_json({"type": "status", "message": "Thinking..."})
            try:
                async for event in services.agent.stream_chat(
                    data.get("content") or "",
                    session_id=session_id,
                    context=context,
                    user_id=user_id,
                ):
                    if isinstance(event, ChatResponse):
                        await websocket.send_json({"type": "message", **event.model_dump(mode="json", by_alias=True)})
                    else:
                        await websocket.send_json({"type": "chunk", "content": event})
            except RentalScoutError as e:
                await websocket.send_json({"type": "error", **e.to_dict()})

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: {session_id}")
