"""Errors raised by the inbox services.

Each error carries a stable ``code`` and the HTTP status the API layer maps it
to (see ``app.errors.register_error_handlers``).
"""

from __future__ import annotations


class SocialInboxError(Exception):
    code = "social_inbox_error"
    status_code = 500

    def __init__(self, message: str | None = None, details: object = None):
        self.message = message or self.default_message()
        self.details = details
        super().__init__(self.message)

    def default_message(self) -> str:
        return "Request failed"


class MalformedEvent(SocialInboxError):
    code = "malformed_event"
    status_code = 400

    def default_message(self) -> str:
        return "Webhook payload could not be parsed"


class ConversationNotFound(SocialInboxError):
    code = "conversation_not_found"
    status_code = 404

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} not found")


class TemplateNotFound(SocialInboxError):
    code = "template_not_found"
    status_code = 404

    def default_message(self) -> str:
        return "Saved template not found"


class AssignmentConflict(SocialInboxError):
    code = "assignment_conflict"
    status_code = 409

    def __init__(self, conversation_id: str, current_seller_id: str | None = None):
        self.conversation_id = conversation_id
        self.current_seller_id = current_seller_id
        super().__init__(
            f"Conversation {conversation_id} was claimed by another agent",
            details={"current_seller_id": current_seller_id},
        )


class NoIntegration(SocialInboxError):
    code = "no_integration"
    status_code = 424

    def __init__(self, platform: str, page_id: str):
        self.platform = platform
        self.page_id = page_id
        super().__init__(
            f"No active {platform} integration for page {page_id}. "
            "Please reconnect the integration.",
            details={"platform": platform, "page_id": page_id},
        )


class ReplyValidationError(SocialInboxError):
    code = "invalid_reply"
    status_code = 400


class EmptyReply(ReplyValidationError):
    code = "empty_reply"

    def default_message(self) -> str:
        return "A reply needs either text or media"


class InvalidReply(ReplyValidationError):
    code = "invalid_reply"


class PlatformSendFailure(SocialInboxError):
    code = "platform_send_failure"
    status_code = 502

    def __init__(
        self,
        message: str,
        remote_status: int | None = None,
        delivered: int = 0,
    ):
        self.remote_status = remote_status
        self.delivered = delivered
        super().__init__(
            message,
            details={"remote_status": remote_status, "delivered": delivered},
        )


class StoreFailure(SocialInboxError):
    code = "store_failure"
    status_code = 503

    def default_message(self) -> str:
        return "Storage is unavailable"
