from assignment_bot.clients.gemini_client import GeminiClient
from assignment_bot.clients.groq_client import GroqClient

__all__ = ["GeminiClient", "GroqClient"]
