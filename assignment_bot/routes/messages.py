from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from assignment_bot.allowlist import Allowlist
from assignment_bot.models import InboundMessage, MessageKind
from assignment_bot.services.classifier import classify
from assignment_bot.services.ingestion import IngestionEngine, local_now
from assignment_bot.services.store import ProcessedMessages

router = APIRouter(prefix="/api", tags=["messages"])


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


class MessageIn(BaseModel):
    id: str
    chat_id: str
    sender_id: str
    text: str = ""
    image_base64: str | None = None
    image_mime: str = "image/jpeg"
    from_me: bool = False


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _engine(request: Request) -> IngestionEngine:
    return request.app.state.engine


def _allowlist(request: Request) -> Allowlist:
    return request.app.state.allowlist


def _ledger(request: Request) -> ProcessedMessages:
    return request.app.state.processed


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@router.post("/messages")
async def receive_message(body: MessageIn, request: Request) -> dict:
    """Classify an inbound chat message and ingest it if it is candidate text.

    Commands are returned parsed for the command layer to execute.
    """
    message = InboundMessage(
        id=body.id,
        chat_id=body.chat_id,
        sender_id=body.sender_id,
        text=body.text,
        received_at=local_now(),
        image_base64=body.image_base64,
        image_mime=body.image_mime,
        from_me=body.from_me,
    )
    classification = classify(message, _allowlist(request).is_monitored(message.chat_id))
    if classification.kind is MessageKind.IGNORABLE:
        return {"kind": classification.kind.value}

    if not await _ledger(request).mark_processed(message.id):
        return {"kind": classification.kind.value, "duplicate": True}

    if classification.kind is MessageKind.COMMAND:
        command = classification.command
        return {
            "kind": classification.kind.value,
            "command": {"verb": command.verb, "args": list(command.args)},
        }

    result = await _engine(request).ingest(message)
    return {"kind": classification.kind.value, "result": result.to_dict()}


@router.post("/clarifications/sweep")
async def sweep_clarifications(request: Request) -> dict:
    """Drop expired clarification sessions.  Driven by an external timer."""
    return {"expired": _engine(request).sweep_clarifications()}


@router.delete("/clarifications/{sender_id}")
async def cancel_clarification(sender_id: str, request: Request) -> dict:
    if not _engine(request).cancel_clarification(sender_id):
        raise HTTPException(
            status_code=404, detail=f"No open clarification for {sender_id}"
        )
    return {"sender_id": sender_id, "status": "cancelled"}
