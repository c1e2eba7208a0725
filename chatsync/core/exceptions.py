"""Chat synchronization exceptions."""


class ChatSyncError(Exception):
    """Base exception for the synchronization core."""


class TransportError(ChatSyncError):
    """Exception raised when the chat gateway returns an error."""

    def __init__(self, detail: str, status_code: int | None = None):
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"Chat gateway error: {detail}")


class TransportUnavailableError(TransportError):
    """Exception raised when the chat gateway cannot be reached."""

    def __init__(self, detail: str):
        super().__init__(f"Connection error: {detail}")


class MalformedPayloadError(ChatSyncError):
    """Exception raised when a wire payload cannot be decoded."""

    def __init__(self, kind: str, detail: str):
        self.kind = kind
        self.detail = detail
        super().__init__(f"Malformed {kind} payload: {detail}")


class CacheStoreError(ChatSyncError):
    """Exception raised when the offline cache cannot be read or written."""

    def __init__(self, conversation_id: str | None, detail: str):
        self.conversation_id = conversation_id
        self.detail = detail
        target = f"conversation '{conversation_id}'" if conversation_id else "cache"
        super().__init__(f"Cache store error for {target}: {detail}")
