"""Customer-side view of the customer's own support conversation."""

from sqlalchemy.orm import Session

from app.models.message import Message
from app.services.errors import ValidationError
from app.services.identity import Identity
from app.services.messages import append_message, list_messages


def load_history(db: Session, identity: Identity, *, after_id: int | None = None) -> list[Message]:
    """Return the caller's conversation oldest first; read state is left alone."""

    return list_messages(db, identity.participant_id, after_id=after_id)


def send_message(
    db: Session,
    identity: Identity,
    body: str | None,
    attachment_ref: str | None = None,
) -> Message:
    """Append a customer message to the caller's own conversation."""

    if not (body or "").strip() and not (attachment_ref or "").strip():
        raise ValidationError("Type a message or attach a file before sending.")
    return append_message(
        db,
        identity.participant_id,
        "user",
        body=body,
        attachment_ref=attachment_ref,
    )
