"""Pydantic request/response models for the conversation monitoring API."""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class StartConversationRequest(BaseModel):
    brand_id: str
    ai_model_id: str
    initial_query: str = Field(..., min_length=1, max_length=2000)
    ai_response: str = Field(..., min_length=1, max_length=50000)
    conversation_thread_id: Optional[str] = Field(None, max_length=255)
    context: Optional[Dict[str, Any]] = None
    processing_time_ms: Optional[int] = Field(None, ge=0)
    tokens_used: Optional[int] = Field(None, ge=0)
    cost: Optional[float] = Field(None, ge=0)


class ContinueConversationRequest(BaseModel):
    user_input: str = Field(..., min_length=1, max_length=2000)
    ai_response: str = Field(..., min_length=1, max_length=50000)
    turn_type: Literal["follow_up", "clarification", "comparison"] = "follow_up"
    processing_time_ms: Optional[int] = Field(None, ge=0)
    tokens_used: Optional[int] = Field(None, ge=0)
    cost: Optional[float] = Field(None, ge=0)


class DetectMentionsRequest(BaseModel):
    brand_id: str
    text: str = Field(..., min_length=1, max_length=50000)
    context: Optional[str] = Field(None, max_length=2000)


class ConversationListQuery(BaseModel):
    brand_id: Optional[str] = None
    ai_model_id: Optional[str] = None
    conversation_type: Optional[
        Literal["query_response", "multi_turn", "follow_up", "comparison"]
    ] = None
    is_active: Optional[bool] = None
    has_mentions: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(50, ge=1, le=500)
    offset: int = Field(0, ge=0)


class ConversationListResponse(BaseModel):
    conversations: List[Dict[str, Any]]
    total: int
    limit: int
    offset: int
