from typing import Optional
import logging

logger = logging.getLogger(__name__)

FAILURE_REPLY = "記録の処理に失敗しました。もう一度試してください。"

class AppError(Exception):
    stage = "app"

    def __init__(self, message: str, user_message: Optional[str] = None):
        self.message = message
        self.user_message = user_message or FAILURE_REPLY
        super().__init__(self.message)

class PayloadMalformed(AppError):
    """Webhook body could not be understood. Nothing can be replied to."""
    stage = "parse"

class FetchFailed(AppError):
    stage = "fetch"

class ExtractionFailed(AppError):
    stage = "extract"

class PersistFailed(AppError):
    stage = "persist"

class ReplyFailed(AppError):
    stage = "reply"

class ErrorHandler:
    @staticmethod
    def handle_stage_error(error: AppError) -> str:
        """Log a stage failure and return the text shown to the user"""
        logger.error(f"{error.stage} failed: {error.message}")
        return error.user_message

    @staticmethod
    def handle_reply_error(error: AppError) -> None:
        logger.error(f"Reply failed: {error.message}")
