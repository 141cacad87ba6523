from pydantic import BaseModel, ConfigDict, Field
from typing import Any

class OutboundMessage(BaseModel):
    """Request handed to the transport on the request channel."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str = Field(..., description="Request identifier the reply is tagged with")
    action: str = Field(..., description="Caller-chosen operation name")
    data: Any = None
