from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from datetime import datetime
from typing import Optional

from app.core.database import get_db
from app.core.dependencies import get_optional_user, require_admin
from app.core.responses import ok
from app.modules.users.models import User
from app.modules.loans.models import Loan, LoanStatus
from app.modules.chatbot.knowledge import QAPair
from app.modules.chatbot.schemas import (
    ChatRequest, ChatResponse, ChatHistoryResponse, ChatMessage, ChatbotStats, TrainingDataCreate
)
from app.modules.chatbot.services import ChatbotService, get_chatbot_service
from app.integrations.gemini import GeminiClient, get_ai_client

router = APIRouter(prefix="/api/chatbot", tags=["Chatbot"])

HINT_CONFIDENCE = 0.9


async def _pending_loan_count(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(Loan).where(
            Loan.user_id == user_id, Loan.status == LoanStatus.PENDING
        )
    )
    return result.scalar_one()


@router.post("/chat")
async def chat(
    chat_in: ChatRequest,
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
    chatbot: ChatbotService = Depends(get_chatbot_service),
    ai: GeminiClient = Depends(get_ai_client)
):
    """
    Ask the support assistant.

    - Public; a valid token personalizes loan answers
    - `source` tells whether the answer came from cache, the knowledge base or the AI provider
    - History is kept under `sessionId`, or under the caller's own session when logged in;
      anonymous calls without a `sessionId` are not recorded
    """
    session_id = chat_in.session_id
    if session_id is None and current_user:
        session_id = f"user-{current_user.id}"

    result = await chatbot.process_message(
        chat_in.message,
        ai,
        session_id=session_id,
        user_id=current_user.id if current_user else None,
    )

    response = result["response"]
    if current_user and result["confidence"] < HINT_CONFIDENCE and "loan" in chat_in.message.lower():
        pending = await _pending_loan_count(db, current_user.id)
        if pending:
            response += (
                f"\n\n💡 I see you have {pending} pending loan application(s). "
                "You can check their status in your dashboard."
            )

    return ok(ChatResponse(
        response=response,
        confidence=result["confidence"],
        source=result["source"],
        processing_time_ms=result["processing_time_ms"],
        session_id=session_id,
        timestamp=datetime.utcnow(),
    ))


@router.get("/history/{session_id}")
async def read_history(
    session_id: str,
    chatbot: ChatbotService = Depends(get_chatbot_service)
):
    messages = [ChatMessage(**message) for message in chatbot.get_history(session_id)]
    return ok(ChatHistoryResponse(session_id=session_id, messages=messages, message_count=len(messages)))


@router.delete("/session/{session_id}")
async def clear_session(
    session_id: str,
    chatbot: ChatbotService = Depends(get_chatbot_service)
):
    cleared = chatbot.clear_session(session_id)
    return ok({"cleared": cleared}, "Chat session cleared" if cleared else "No active session found")


@router.get("/stats")
async def read_stats(
    chatbot: ChatbotService = Depends(get_chatbot_service),
    current_user: User = Depends(require_admin)
):
    return ok(ChatbotStats(**chatbot.get_stats()))


@router.post("/training/add", status_code=status.HTTP_201_CREATED)
async def add_training_data(
    entry: TrainingDataCreate,
    chatbot: ChatbotService = Depends(get_chatbot_service),
    current_user: User = Depends(require_admin)
):
    """Add a Q&A pair to the in-memory knowledge base (lost on restart)"""
    qa_pair = QAPair(
        id=entry.id or f"custom_{len(chatbot.training_data) + 1:03d}",
        question=entry.question,
        answer=entry.answer,
        category=entry.category,
        keywords=entry.keywords,
    )
    chatbot.add_training_data(qa_pair)
    return ok({"id": qa_pair.id, "training_data_size": len(chatbot.training_data)}, "Training data added")


@router.get("/health")
async def chatbot_health(chatbot: ChatbotService = Depends(get_chatbot_service)):
    return ok({
        "status": "healthy",
        "training_data_size": len(chatbot.training_data),
        "timestamp": datetime.utcnow(),
    })
