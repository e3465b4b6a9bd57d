from datetime import datetime
from typing import Dict, List, Optional, Tuple
import logging
import time

from app.core.cache import TTLCache
from app.core.config import settings
from app.core.exceptions import ExternalServiceError, ConflictError
from app.integrations.gemini import GeminiClient
from app.modules.chatbot.knowledge import (
    QAPair, TRAINING_DATA, SYSTEM_PROMPTS, CONTEXT_TEMPLATES, TOPIC_TERMS, CLOSING_LINE
)

logger = logging.getLogger(__name__)

MIN_MATCH_SCORE = 0.3
DIRECT_ANSWER_SCORE = 0.8


def calculate_similarity(user_input: str, qa_pair: QAPair) -> float:
    """
    Keyword-overlap score normalized by the keyword and word count.

    Each keyword found in the input is worth 3. Each input word adds 1 to the
    maximum, scores 1 per identical question word and 0.5 per containment
    when the contained word is longer than 3 characters. Containment bonuses
    are not capped, so close paraphrases can score above 1.
    """
    text = user_input.lower()
    user_words = text.split()
    question_words = qa_pair.question.lower().split()

    score = 0.0
    max_score = 0.0

    for keyword in qa_pair.keywords:
        max_score += 3
        if keyword.lower() in text:
            score += 3

    for user_word in user_words:
        max_score += 1
        for question_word in question_words:
            if user_word == question_word:
                score += 1
            if len(user_word) > 3 and user_word in question_word:
                score += 0.5
            if len(question_word) > 3 and question_word in user_word:
                score += 0.5

    return score / max_score if max_score > 0 else 0.0


def find_best_match(user_input: str, training_data: List[QAPair]) -> Tuple[Optional[QAPair], float]:
    best_match = None
    best_score = 0.0
    for qa_pair in training_data:
        similarity = calculate_similarity(user_input, qa_pair)
        if similarity > best_score and similarity > MIN_MATCH_SCORE:
            best_score = similarity
            best_match = qa_pair
    return best_match, best_score


def detect_context(user_input: str) -> str:
    text = user_input.lower()
    for topic, terms in TOPIC_TERMS:
        if any(term in text for term in terms):
            return CONTEXT_TEMPLATES[topic]
    return ""


def build_prompt(user_input: str, best_match: Optional[QAPair] = None) -> str:
    prompt = SYSTEM_PROMPTS["base"]

    context = detect_context(user_input)
    if context:
        prompt += f"\n\n{context}"

    if best_match:
        prompt += (
            "\n\nRELEVANT EXAMPLE:\n"
            f"Question: \"{best_match.question}\"\n"
            f"Answer: \"{best_match.answer}\"\n\n"
            "Based on this example and the user's question, provide a helpful response."
        )

    prompt += (
        f"\n\nUser Question: \"{user_input}\"\n\n"
        f"Provide a helpful, concise response (max 150 words). End with \"{CLOSING_LINE}\""
    )
    return prompt


class ChatbotService:
    """
    Support assistant: cached answers, then the knowledge base, then the AI provider.
    Cache and sessions are process-local and are lost on restart.
    """

    def __init__(
        self,
        training_data: Optional[List[QAPair]] = None,
        max_session_messages: int = settings.CHATBOT_MAX_SESSION_MESSAGES
    ):
        self.training_data: List[QAPair] = list(training_data if training_data is not None else TRAINING_DATA)
        self.cache: TTLCache = TTLCache(maxsize=settings.CHATBOT_CACHE_SIZE)
        self.sessions: TTLCache = TTLCache(
            maxsize=settings.CHATBOT_MAX_SESSIONS,
            ttl_seconds=settings.CHATBOT_SESSION_TTL_HOURS * 3600,
        )
        self.max_session_messages = max_session_messages

    @staticmethod
    def _cache_key(text: str) -> str:
        return text.lower().strip()

    def _record(self, session_id: Optional[str], user_id: Optional[int], question: str, answer: str) -> None:
        if session_id is None:
            return
        session = self.sessions.get(session_id)
        if session is None:
            session = {"session_id": session_id, "user_id": user_id, "messages": [], "created_at": datetime.utcnow()}
        now = datetime.utcnow()
        session["messages"].append({"role": "user", "content": question, "timestamp": now})
        session["messages"].append({"role": "assistant", "content": answer, "timestamp": now})
        # Oldest messages drop off once the session reaches its cap
        del session["messages"][:-self.max_session_messages]
        session["last_activity"] = now
        # set() again so the TTL restarts from the latest activity
        self.sessions.set(session_id, session)

    async def process_message(
        self,
        text: str,
        ai: GeminiClient,
        session_id: Optional[str] = None,
        user_id: Optional[int] = None
    ) -> Dict[str, object]:
        started = time.perf_counter()

        def result(response: str, confidence: float, source: str) -> Dict[str, object]:
            return {
                "response": response,
                "confidence": confidence,
                "source": source,
                "processing_time_ms": int((time.perf_counter() - started) * 1000),
            }

        clean_input = text.strip()
        if not clean_input:
            return result(SYSTEM_PROMPTS["greeting"], 1.0, "training")

        cached = self.cache.get(self._cache_key(clean_input))
        if cached is not None:
            self._record(session_id, user_id, clean_input, cached)
            return result(cached, 0.9, "cache")

        best_match, score = find_best_match(clean_input, self.training_data)
        if best_match and score > DIRECT_ANSWER_SCORE:
            response = f"{best_match.answer}\n\n{CLOSING_LINE}"
            self.cache.set(self._cache_key(clean_input), response)
            self._record(session_id, user_id, clean_input, response)
            return result(response, 0.95, "training")

        try:
            response = await ai.generate(build_prompt(clean_input, best_match))
        except ExternalServiceError as e:
            logger.error(f"Chatbot AI call failed: {e.message}")
            return result(SYSTEM_PROMPTS["fallback"], 0.5, "training")

        self.cache.set(self._cache_key(clean_input), response)
        self._record(session_id, user_id, clean_input, response)
        return result(response, 0.8 if best_match else 0.6, "ai")

    def get_history(self, session_id: str) -> List[dict]:
        session = self.sessions.get(session_id)
        return list(session["messages"]) if session else []

    def clear_session(self, session_id: str) -> bool:
        return self.sessions.pop(session_id) is not None

    def add_training_data(self, qa_pair: QAPair) -> None:
        if any(existing.id == qa_pair.id for existing in self.training_data):
            raise ConflictError(f"Training entry {qa_pair.id} already exists")
        self.training_data.append(qa_pair)
        logger.info(f"Added chatbot training entry {qa_pair.id} ({qa_pair.category})")

    def get_stats(self) -> Dict[str, int]:
        return {
            "sessions_count": len(self.sessions),
            "cache_size": len(self.cache),
            "training_data_size": len(self.training_data),
        }


chatbot_service = ChatbotService()


def get_chatbot_service() -> ChatbotService:
    return chatbot_service
