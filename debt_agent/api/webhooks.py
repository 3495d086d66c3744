"""
Inbound message webhook called by the WhatsApp gateway.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from debt_agent.core.dependencies import ServiceContainer, get_container
from debt_agent.core.logging import get_logger
from debt_agent.models.results import ResponseOutcome

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = get_logger(__name__)


class InboundMessage(BaseModel):
    """Gateway payload for a received message. Unknown fields are kept as raw data."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    sender: str = Field(..., alias="from", min_length=1)
    message: str = ""
    message_id: Optional[str] = None
    timestamp: Optional[int] = None


class InboundAck(BaseModel):
    received: bool = True
    outcome: Optional[ResponseOutcome] = None


@router.post("/inbound", response_model=InboundAck)
async def receive_inbound(
    payload: InboundMessage,
    container: ServiceContainer = Depends(get_container),
) -> InboundAck:
    """Hand an inbound message to the registered handler."""
    raw: Dict[str, Any] = payload.model_dump(by_alias=True)
    logger.info("Inbound message received", sender=payload.sender, message_length=len(payload.message))

    outcome = await container.channel.dispatch_inbound(payload.sender, payload.message, raw)
    return InboundAck(outcome=outcome if isinstance(outcome, ResponseOutcome) else None)
