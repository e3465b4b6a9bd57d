from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import List, Literal, Optional


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1, max_length=2000)
    session_id: Optional[str] = Field(None, alias="sessionId", min_length=1, max_length=100)

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Message cannot be empty")
        return v


class ChatResponse(BaseModel):
    response: str
    confidence: float
    source: Literal["cache", "training", "ai"]
    processing_time_ms: int
    session_id: Optional[str] = None
    timestamp: datetime


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime


class ChatHistoryResponse(BaseModel):
    session_id: str
    messages: List[ChatMessage]
    message_count: int


class ChatbotStats(BaseModel):
    sessions_count: int
    cache_size: int
    training_data_size: int


class TrainingDataCreate(BaseModel):
    """New knowledge-base entry; the id is generated when omitted"""
    id: Optional[str] = Field(None, max_length=50)
    question: str = Field(..., min_length=5, max_length=500)
    answer: str = Field(..., min_length=10, max_length=2000)
    category: Literal["loans", "nft", "kyc", "profile", "payments", "technical"]
    keywords: List[str] = Field(default_factory=list)

    @field_validator("keywords")
    @classmethod
    def normalize_keywords(cls, v):
        return [k.strip().lower() for k in v if k.strip()]
