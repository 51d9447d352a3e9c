"""
Service-level exceptions.

ProviderFetchError is raised by request_account_limits and recovered into
default limits by its callers. The other two reach API callers as 409 / 404.
"""


class ProviderFetchError(Exception):
    """WhatsApp Cloud API call failed or returned an unusable body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidStateError(Exception):
    """Transition not allowed from the conversation's current state."""

    def __init__(self, message: str, conversation_id: str | None = None):
        super().__init__(message)
        self.conversation_id = conversation_id


class ConversationNotFoundError(LookupError):
    """No inbox conversation with the given id."""
