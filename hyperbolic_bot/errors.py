"""
User-facing failures. Each one carries the single chat reply that reports it.
"""


class BotError(Exception):
    user_message = "❌ Something went wrong"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.user_message)
        if message:
            self.user_message = message


class MissingApiKey(BotError):
    user_message = "🔐 *Please send your API key first!*"


class MissingModel(BotError):
    user_message = "⚠️ *Select model first using /switch*"


class UnknownModel(BotError):
    user_message = "❌ *Model not found!*"


class InvalidApiKey(BotError):
    user_message = "❌ 🔑 Invalid API Key"


class UpstreamError(BotError):
    user_message = "❌ ⚠️ Processing Error"


class NoPromptsFound(BotError):
    user_message = "⚠️ No valid prompts found."


class BulkAlreadyRunning(BotError):
    user_message = "⏳ A bulk run is already in progress. Use /remove to stop it."


class InvalidCallback(BotError):
    user_message = "❌ Action failed"


class ConfigError(Exception):
    pass
