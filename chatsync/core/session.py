"""Session identity shared by the synchronization components."""

from dataclasses import dataclass

ROOM_KEY = "roomId"
USER_KEY = "userId"


@dataclass(frozen=True)
class SessionContext:
    """Identity of the signed-in operator.

    Attributes:
        user_id: The operator's own user identifier
        company_id: Identifier of the company's shared common room
    """

    user_id: str
    company_id: str

    def is_company(self, conversation_id: str) -> bool:
        """Check whether a conversation is the shared company room."""
        return conversation_id == self.company_id

    def routing_key(self, conversation_id: str) -> str:
        """Get the transport routing key for a conversation."""
        return ROOM_KEY if self.is_company(conversation_id) else USER_KEY
