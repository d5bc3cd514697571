from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from rentalscout.state.models import utcnow


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ClientContext(BaseModel):
    """What the UI is currently showing; rendered into the system prompt."""
    current_search: Optional[str] = None
    filters: Dict[str, Any] = Field(default_factory=dict)
    user_preferences: Dict[str, Any] = Field(default_factory=dict)
    current_property: Optional[str] = None


class SearchMetadata(BaseModel):
    search_performed: bool = False
    search_type: Optional[Literal["vector", "lexical", "hybrid"]] = None
    query: Optional[str] = None
    filters: Dict[str, Any] = Field(default_factory=dict)
    listing_ids: List[str] = Field(default_factory=list)


class ChatContext(BaseModel):
    tool_calls_made: int = 0
    has_rental_results: bool = False
    search_metadata: SearchMetadata = Field(default_factory=SearchMetadata)
    tools_used: List[str] = Field(default_factory=list)
    tool_loop_exceeded: bool = False
    degraded: bool = False


class ChatResponse(BaseModel):
    success: bool = True
    message: str
    session_id: str = Field(..., alias="sessionId")
    timestamp: datetime = Field(default_factory=utcnow)
    context: ChatContext = Field(default_factory=ChatContext)

    model_config = ConfigDict(populate_by_name=True)
