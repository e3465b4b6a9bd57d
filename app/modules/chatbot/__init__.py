# Chatbot module
from app.modules.chatbot.knowledge import QAPair, TRAINING_DATA

__all__ = ["QAPair", "TRAINING_DATA"]
