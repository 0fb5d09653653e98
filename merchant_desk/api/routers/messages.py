"""Messages API router."""

from fastapi import APIRouter, Security

from merchant_desk.infra.auth import verify_api_key
from merchant_desk.models.message import InboundMessage, InboundMessageResponse
from merchant_desk.services.orchestrator import handle_incoming_message

router = APIRouter()


@router.post("/messages/inbound", tags=["Messages"], response_model=InboundMessageResponse)
async def handle_inbound_message(
    message: InboundMessage,
    _: None = Security(verify_api_key),
):
    """
    Answer a merchant message delivered by a chat adapter.

    Requires API key authentication via X-API-Key header or api_key query parameter.

    The adapter renders the returned answer in place of its "thinking"
    placeholder. Unmapped channels and internal failures still return 200
    with a fixed, user-facing answer.

    **Example Request:**
    ```json
    {
        "channelId": "C0AF237ATKJ",
        "platform": "slack",
        "userId": "U123",
        "userName": "Ana",
        "text": "What was my acceptance rate yesterday?"
    }
    ```
    """
    answer = await handle_incoming_message(message)
    return InboundMessageResponse(answer=answer)
