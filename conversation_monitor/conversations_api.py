"""
API endpoints for conversation monitoring.

Provides endpoints for:
- Starting and continuing monitored conversations
- Ad hoc brand mention detection
- Listing, searching and inspecting conversations (turns, mentions, topics)
- Per-brand statistics and dashboard data
"""

import logging
from datetime import datetime
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from conversation_monitor.db_session import get_async_session
from conversation_monitor.schemas import (
    ContinueConversationRequest,
    ConversationListQuery,
    ConversationListResponse,
    DetectMentionsRequest,
    StartConversationRequest,
)
from conversation_monitor.services.conversation_errors import (
    ConversationInactiveError,
    ConversationValidationError,
)
from conversation_monitor.services.conversation_monitoring import ConversationMonitoringService
from conversation_monitor.services.conversation_reader import (
    serialize_conversation,
    serialize_mention,
    serialize_related,
    serialize_relationship,
    serialize_topic,
    serialize_turn,
)
from conversation_monitor.services.conversation_store import ConversationFilter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


def get_monitoring_service(db: AsyncSession = Depends(get_async_session)) -> ConversationMonitoringService:
    return ConversationMonitoringService(db)


def _to_http_exception(exc: Exception, action: str) -> HTTPException:
    """Map service errors onto status codes; anything unexpected is a 500."""
    if isinstance(exc, HTTPException):
        return exc
    if isinstance(exc, ConversationValidationError):
        logger.warning("Rejected request to %s: %s", action, exc)
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, LookupError):
        logger.warning("Failed to %s: %s", action, exc)
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConversationInactiveError):
        return HTTPException(status_code=409, detail=str(exc))
    logger.exception("Failed to %s", action)
    return HTTPException(status_code=500, detail=f"Failed to {action}: {str(exc)}")


def _serialize_write_result(result: Dict[str, Any]) -> Dict[str, Any]:
    payload = {
        "turn": serialize_turn(result["turn"]),
        "mentions": [serialize_mention(m) for m in result["mentions"]],
        "topics": [serialize_topic(t) for t in result["topics"]],
        "enrichment_errors": result["enrichment_errors"],
    }
    if "conversation" in result:
        payload["conversation"] = serialize_conversation(result["conversation"])
    if "relationships" in result:
        payload["relationships"] = [serialize_relationship(r) for r in result["relationships"]]
    return payload


@router.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint for conversation monitoring API."""
    return {
        "status": "healthy",
        "service": "conversations_api",
        "timestamp": datetime.now().isoformat(),
    }


@router.post("", status_code=201)
async def start_conversation(
    request: StartConversationRequest,
    service: ConversationMonitoringService = Depends(get_monitoring_service),
):
    """
    Start tracking a conversation from its first query/response pair.

    Returns the conversation, turn 1, detected mentions, topics, relationship
    edges to similar earlier conversations, and any enrichment errors.
    """
    logger.info("Starting conversation for brand %s", request.brand_id)
    try:
        result = await service.start_conversation(
            brand_id=request.brand_id,
            ai_model_id=request.ai_model_id,
            initial_query=request.initial_query,
            ai_response=request.ai_response,
            conversation_thread_id=request.conversation_thread_id,
            context=request.context,
            processing_time_ms=request.processing_time_ms,
            tokens_used=request.tokens_used,
            cost=request.cost,
        )
    except Exception as exc:
        raise _to_http_exception(exc, "start conversation") from exc

    return _serialize_write_result(result)


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    params: Annotated[ConversationListQuery, Query()],
    service: ConversationMonitoringService = Depends(get_monitoring_service),
):
    """List conversations, most recently active first."""
    try:
        result = await service.get_conversations(ConversationFilter(**params.model_dump()))
    except Exception as exc:
        raise _to_http_exception(exc, "list conversations") from exc

    return ConversationListResponse(
        conversations=[serialize_conversation(c) for c in result["conversations"]],
        total=result["total"],
        limit=params.limit,
        offset=params.offset,
    )


@router.get("/search/{brand_id}")
async def search_conversations(
    brand_id: str,
    q: str = Query(..., min_length=1, max_length=2000),
    limit: int = Query(20, ge=1, le=100),
    service: ConversationMonitoringService = Depends(get_monitoring_service),
):
    """Search a brand's conversations by initial query and turn text."""
    try:
        conversations = await service.search_conversations(brand_id, q, limit=limit)
    except Exception as exc:
        raise _to_http_exception(exc, "search conversations") from exc

    return {
        "conversations": [serialize_conversation(c) for c in conversations],
        "count": len(conversations),
    }


@router.get("/dashboard/{brand_id}")
async def get_dashboard(
    brand_id: str,
    days: int = Query(30, ge=1, le=365),
    service: ConversationMonitoringService = Depends(get_monitoring_service),
):
    try:
        data = await service.get_dashboard_data(brand_id, days)
    except Exception as exc:
        raise _to_http_exception(exc, "load dashboard") from exc

    return {
        "statistics": data["statistics"],
        "recent_conversations": [serialize_conversation(c) for c in data["recent_conversations"]],
        "top_mentions": [serialize_mention(m) for m in data["top_mentions"]],
        "trending_topics": data["trending_topics"],
    }


@router.get("/statistics/{brand_id}")
async def get_statistics(
    brand_id: str,
    days: int = Query(30, ge=1, le=365),
    service: ConversationMonitoringService = Depends(get_monitoring_service),
):
    try:
        return await service.get_statistics(brand_id, days)
    except Exception as exc:
        raise _to_http_exception(exc, "load statistics") from exc


@router.post("/detect-mentions")
async def detect_mentions(
    request: DetectMentionsRequest,
    service: ConversationMonitoringService = Depends(get_monitoring_service),
):
    """Detect brand mentions in arbitrary text without storing anything."""
    try:
        return await service.detect_mentions(request.brand_id, request.text, request.context)
    except Exception as exc:
        raise _to_http_exception(exc, "detect mentions") from exc


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    service: ConversationMonitoringService = Depends(get_monitoring_service),
):
    """Conversation with its turns, mentions, topics and related conversations."""
    try:
        details = await service.get_conversation_details(conversation_id)
    except Exception as exc:
        raise _to_http_exception(exc, "fetch conversation") from exc

    return {
        "conversation": serialize_conversation(details["conversation"]),
        "turns": [serialize_turn(t) for t in details["turns"]],
        "mentions": [serialize_mention(m) for m in details["mentions"]],
        "topics": [serialize_topic(t) for t in details["topics"]],
        "relationships": serialize_related(details["relationships"]),
    }


@router.post("/{conversation_id}/continue", status_code=201)
async def continue_conversation(
    conversation_id: str,
    request: ContinueConversationRequest,
    service: ConversationMonitoringService = Depends(get_monitoring_service),
):
    logger.info("Continuing conversation %s (%s)", conversation_id, request.turn_type)
    try:
        result = await service.continue_conversation(
            conversation_id,
            user_input=request.user_input,
            ai_response=request.ai_response,
            turn_type=request.turn_type,
            processing_time_ms=request.processing_time_ms,
            tokens_used=request.tokens_used,
            cost=request.cost,
        )
    except Exception as exc:
        raise _to_http_exception(exc, "continue conversation") from exc

    return _serialize_write_result(result)


@router.patch("/{conversation_id}/inactive")
async def deactivate_conversation(
    conversation_id: str,
    service: ConversationMonitoringService = Depends(get_monitoring_service),
):
    try:
        conversation = await service.deactivate_conversation(conversation_id)
    except Exception as exc:
        raise _to_http_exception(exc, "deactivate conversation") from exc

    return serialize_conversation(conversation)


@router.get("/{conversation_id}/turns")
async def get_turns(
    conversation_id: str,
    service: ConversationMonitoringService = Depends(get_monitoring_service),
):
    try:
        turns = await service.get_turns(conversation_id)
    except Exception as exc:
        raise _to_http_exception(exc, "fetch turns") from exc

    return {"turns": [serialize_turn(t) for t in turns], "count": len(turns)}


@router.get("/{conversation_id}/mentions")
async def get_mentions(
    conversation_id: str,
    service: ConversationMonitoringService = Depends(get_monitoring_service),
):
    try:
        mentions = await service.get_mentions(conversation_id)
    except Exception as exc:
        raise _to_http_exception(exc, "fetch mentions") from exc

    return {"mentions": [serialize_mention(m) for m in mentions], "count": len(mentions)}


@router.get("/{conversation_id}/topics")
async def get_topics(
    conversation_id: str,
    service: ConversationMonitoringService = Depends(get_monitoring_service),
):
    try:
        topics = await service.get_topics(conversation_id)
    except Exception as exc:
        raise _to_http_exception(exc, "fetch topics") from exc

    return {"topics": [serialize_topic(t) for t in topics], "count": len(topics)}
