"""Messaging collaborator: conversations between coaches and members."""

import logging

from app.core.database import async_session_factory
from app.models.notification import Conversation, ConversationParticipant, ConversationType

logger = logging.getLogger(__name__)


async def create_conversation(
    initiator_id: int,
    type: ConversationType,
    name: str | None,
    participant_ids: list[int],
) -> None:
    """Open a conversation. The initiator always joins; participants are account ids."""
    async with async_session_factory() as db:
        conversation = Conversation(type=type, name=name, created_by=initiator_id)
        db.add(conversation)
        await db.flush()

        for user_id in sorted({initiator_id, *participant_ids}):
            db.add(ConversationParticipant(conversation_id=conversation.id, user_id=user_id))
        await db.commit()
        logger.info("Conversation %s (%s) opened by user %s", conversation.id, type, initiator_id)

