"""
Tests for the support assistant: matching, prompt building and the chat endpoints
"""
import pytest

from app.modules.chatbot.knowledge import QAPair, TRAINING_DATA, SYSTEM_PROMPTS, CONTEXT_TEMPLATES, CLOSING_LINE
from app.modules.chatbot.services import (
    ChatbotService, calculate_similarity, find_best_match, detect_context, build_prompt
)

KYC_QUESTION = "kyc documents verification required id"
LOAN_QUESTION = "How do I apply for a loan?"
OFF_TOPIC = "What is the weather on Mars today"


def entry(entry_id: str):
    return next(qa for qa in TRAINING_DATA if qa.id == entry_id)


class TestMatching:

    @pytest.mark.unit
    def test_keyword_heavy_input_scores_high(self):
        assert calculate_similarity(KYC_QUESTION, entry("kyc_001")) == pytest.approx(0.925)

    @pytest.mark.unit
    def test_paraphrase_scores_partially(self):
        assert calculate_similarity(LOAN_QUESTION, entry("loan_001")) == pytest.approx(15 / 22)

    @pytest.mark.unit
    def test_empty_pair_scores_zero(self):
        assert calculate_similarity("", QAPair("x", "", "", "loans", [])) == 0.0

    @pytest.mark.unit
    def test_best_match(self):
        match, score = find_best_match(KYC_QUESTION, TRAINING_DATA)

        assert match.id == "kyc_001"
        assert score > 0.8

    @pytest.mark.unit
    def test_no_match_below_threshold(self):
        assert find_best_match(OFF_TOPIC, TRAINING_DATA) == (None, 0.0)

    @pytest.mark.unit
    @pytest.mark.parametrize("text,topic", [
        ("Can I borrow money?", "loan"),
        ("How does the NFT marketplace work", "nft"),
        ("Is my document verification done", "kyc"),
        ("I forgot my password", "profile"),
    ])
    def test_detect_context(self, text, topic):
        assert detect_context(text) == CONTEXT_TEMPLATES[topic]

    @pytest.mark.unit
    def test_loan_wins_over_later_topics(self):
        assert detect_context("loan nft kyc") == CONTEXT_TEMPLATES["loan"]
        assert detect_context(OFF_TOPIC) == ""

    @pytest.mark.unit
    def test_build_prompt(self):
        prompt = build_prompt(LOAN_QUESTION, entry("loan_001"))

        assert prompt.startswith(SYSTEM_PROMPTS["base"])
        assert CONTEXT_TEMPLATES["loan"] in prompt
        assert "RELEVANT EXAMPLE:" in prompt
        assert f'User Question: "{LOAN_QUESTION}"' in prompt
        assert prompt.endswith(f'End with "{CLOSING_LINE}"')

    @pytest.mark.unit
    def test_build_prompt_without_match(self):
        prompt = build_prompt(OFF_TOPIC)

        assert "RELEVANT EXAMPLE:" not in prompt
        assert "CURRENT USER CONTEXT" not in prompt


class TestProcessMessage:

    @pytest.mark.unit
    async def test_blank_input_greets(self, chatbot, ai):
        result = await chatbot.process_message("   ", ai)

        assert result["response"] == SYSTEM_PROMPTS["greeting"]
        assert result["confidence"] == 1.0
        assert result["source"] == "training"
        assert ai.prompts == []

    @pytest.mark.unit
    async def test_strong_match_answers_directly(self, chatbot, ai):
        result = await chatbot.process_message(KYC_QUESTION, ai)

        assert result["response"] == f"{entry('kyc_001').answer}\n\n{CLOSING_LINE}"
        assert result["confidence"] == 0.95
        assert result["source"] == "training"
        assert ai.prompts == []

    @pytest.mark.unit
    async def test_repeat_question_served_from_cache(self, chatbot, ai):
        first = await chatbot.process_message(KYC_QUESTION, ai)
        second = await chatbot.process_message("  KYC documents verification required ID ", ai)

        assert second["source"] == "cache"
        assert second["confidence"] == 0.9
        assert second["response"] == first["response"]

    @pytest.mark.unit
    async def test_weak_match_asks_provider_with_example(self, chatbot, ai):
        result = await chatbot.process_message(LOAN_QUESTION, ai)

        assert result["source"] == "ai"
        assert result["confidence"] == 0.8
        assert result["response"] == ai.reply
        assert "RELEVANT EXAMPLE:" in ai.prompts[0]

    @pytest.mark.unit
    async def test_no_match_asks_provider(self, chatbot, ai):
        result = await chatbot.process_message(OFF_TOPIC, ai)

        assert result["source"] == "ai"
        assert result["confidence"] == 0.6

    @pytest.mark.unit
    async def test_provider_failure_falls_back(self, chatbot, ai):
        ai.fail = True

        result = await chatbot.process_message(OFF_TOPIC, ai, session_id="s1")

        assert result["response"] == SYSTEM_PROMPTS["fallback"]
        assert result["confidence"] == 0.5
        assert result["source"] == "training"
        assert chatbot.get_stats()["cache_size"] == 0
        assert chatbot.get_history("s1") == []

    @pytest.mark.unit
    async def test_history_and_clear(self, chatbot, ai):
        await chatbot.process_message(KYC_QUESTION, ai, session_id="s1", user_id=3)

        history = chatbot.get_history("s1")

        assert [m["role"] for m in history] == ["user", "assistant"]
        assert history[0]["content"] == KYC_QUESTION
        assert chatbot.clear_session("s1") is True
        assert chatbot.clear_session("s1") is False
        assert chatbot.get_history("s1") == []

    @pytest.mark.unit
    async def test_history_keeps_latest_messages(self, ai):
        service = ChatbotService(max_session_messages=4)
        for _ in range(3):
            await service.process_message(KYC_QUESTION, ai, session_id="s1")
        await service.process_message("kyc documents", ai, session_id="s1")

        history = service.get_history("s1")

        assert len(history) == 4
        assert history[-2]["content"] == "kyc documents"

    @pytest.mark.unit
    async def test_sessionless_message_not_recorded(self, chatbot, ai):
        await chatbot.process_message(KYC_QUESTION, ai)

        assert chatbot.get_stats()["sessions_count"] == 0

    @pytest.mark.unit
    def test_added_entry_is_matchable(self):
        service = ChatbotService(training_data=[])
        service.add_training_data(QAPair(
            "custom_001", "How do I repay early?", "Use the repayment page.", "loans", ["repay", "early"]
        ))

        match, _ = find_best_match("repay early", service.training_data)

        assert match.id == "custom_001"
        assert service.get_stats()["training_data_size"] == 1


class TestChatEndpoints:

    @pytest.mark.integration
    async def test_chat_anonymous(self, client):
        response = await client.post("/api/chatbot/chat", json={"message": KYC_QUESTION, "sessionId": "web-1"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["source"] == "training"
        assert data["confidence"] == 0.95
        assert data["session_id"] == "web-1"

    @pytest.mark.integration
    async def test_sessionless_callers_share_nothing(self, client):
        first = await client.post("/api/chatbot/chat", json={"message": KYC_QUESTION})
        await client.post("/api/chatbot/chat", json={"message": LOAN_QUESTION})

        history = await client.get("/api/chatbot/history/anonymous")

        assert first.json()["data"]["session_id"] is None
        assert history.json()["data"]["message_count"] == 0

    @pytest.mark.integration
    async def test_logged_in_users_get_own_sessions(
        self, client, borrower, other_borrower, borrower_headers, other_headers
    ):
        mine = await client.post("/api/chatbot/chat", headers=borrower_headers, json={"message": KYC_QUESTION})
        await client.post("/api/chatbot/chat", headers=other_headers, json={"message": OFF_TOPIC})

        history = await client.get(f"/api/chatbot/history/user-{borrower.id}")

        assert mine.json()["data"]["session_id"] == f"user-{borrower.id}"
        assert [m["content"] for m in history.json()["data"]["messages"]][::2] == [KYC_QUESTION]

    @pytest.mark.integration
    async def test_blank_message_rejected(self, client):
        response = await client.post("/api/chatbot/chat", json={"message": "   "})

        assert response.status_code == 400

    @pytest.mark.integration
    async def test_pending_loan_hint(self, client, pending_loan, borrower_headers):
        response = await client.post("/api/chatbot/chat", headers=borrower_headers, json={"message": LOAN_QUESTION})

        data = response.json()["data"]
        assert data["confidence"] == 0.8
        assert data["response"].endswith(
            "\n\n💡 I see you have 1 pending loan application(s). You can check their status in your dashboard."
        )

    @pytest.mark.integration
    async def test_no_hint_without_login(self, client, pending_loan, ai):
        response = await client.post("/api/chatbot/chat", json={"message": LOAN_QUESTION})

        assert response.json()["data"]["response"] == ai.reply

    @pytest.mark.integration
    async def test_history_and_clear_session(self, client):
        await client.post("/api/chatbot/chat", json={"message": KYC_QUESTION, "sessionId": "web-2"})

        history = await client.get("/api/chatbot/history/web-2")
        cleared = await client.delete("/api/chatbot/session/web-2")
        again = await client.delete("/api/chatbot/session/web-2")

        assert history.json()["data"]["message_count"] == 2
        assert history.json()["data"]["messages"][0]["content"] == KYC_QUESTION
        assert cleared.json()["data"] == {"cleared": True}
        assert again.json()["data"] == {"cleared": False}

    @pytest.mark.integration
    async def test_stats_admin_only(self, client, admin_headers, borrower_headers):
        denied = await client.get("/api/chatbot/stats", headers=borrower_headers)
        stats = await client.get("/api/chatbot/stats", headers=admin_headers)

        assert denied.status_code == 403
        assert stats.json()["data"] == {"sessions_count": 0, "cache_size": 0, "training_data_size": len(TRAINING_DATA)}

    @pytest.mark.integration
    async def test_add_training_entry(self, client, admin_headers):
        response = await client.post("/api/chatbot/training/add", headers=admin_headers, json={
            "question": "How do I repay a loan early?",
            "answer": "Open the loan in your dashboard and use the repayment form.",
            "category": "loans",
            "keywords": [" Repay ", "early", ""],
        })

        assert response.status_code == 201
        assert response.json()["data"] == {
            "id": f"custom_{len(TRAINING_DATA) + 1:03d}",
            "training_data_size": len(TRAINING_DATA) + 1,
        }

    @pytest.mark.integration
    async def test_duplicate_training_id(self, client, admin_headers):
        response = await client.post("/api/chatbot/training/add", headers=admin_headers, json={
            "id": "loan_001",
            "question": "Duplicate question?",
            "answer": "Duplicate answer text.",
            "category": "loans",
        })

        assert response.status_code == 409

    @pytest.mark.integration
    async def test_health(self, client):
        response = await client.get("/api/chatbot/health")

        assert response.json()["data"]["status"] == "healthy"
