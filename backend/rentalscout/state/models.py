from typing import List, Optional, Any, Dict
from pydantic import BaseModel, Field
from datetime import datetime, timezone
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationTurn(BaseModel):
    role: str  # user, assistant
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class Conversation(BaseModel):
    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: Optional[str] = None
    turns: List[ConversationTurn] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)

    @property
    def message_count(self) -> int:
        return len(self.turns)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def summary(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "message_count": self.message_count,
            "last_activity": self.last_activity.isoformat(),
            "authenticated": self.is_authenticated,
        }


class ToolCallRecord(BaseModel):
    """One tool execution within a single agent run."""
    call_id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    error: Optional[Dict[str, Any]] = None
    is_search: bool = False
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def has_results(self) -> bool:
        if not self.ok or self.result is None:
            return False
        if isinstance(self.result, dict) and "results" in self.result:
            return bool(self.result["results"])
        if isinstance(self.result, dict) and "listings" in self.result:
            return bool(self.result["listings"])
        return bool(self.result)

    def summary(self) -> Dict[str, Any]:
        return {"name": self.name, "arguments": self.arguments, "ok": self.ok}
