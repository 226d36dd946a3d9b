"""
Record store used by the conversation engine.

``ConversationStore`` is the collaborator contract the orchestrator depends
on; ``SqlConversationStore`` implements it on top of the crud package, one
session per call. Database failures surface as PersistenceError.
"""

import logging
from typing import List, Optional, Protocol

import crud
from domain.contexts import ConversationRecord
from domain.enums import ConversationStatus
from domain.messages import Message
from domain.participants import Participant
from exceptions import PersistenceError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

logger = logging.getLogger("ConversationStore")


class ConversationStore(Protocol):
    async def create_conversation(self, record: ConversationRecord) -> None: ...

    async def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]: ...

    async def list_conversations(self, owner_id: Optional[str] = None, limit: int = 50) -> List[ConversationRecord]: ...

    async def append_message(self, message: Message) -> None: ...

    async def get_messages_since(self, conversation_id: str, after_seq: int = -1) -> List[Message]: ...

    async def update_status(self, conversation_id: str, status: ConversationStatus) -> None: ...

    async def save_schedule(self, conversation_id: str, speaking_order: List[str], cursor: int) -> None: ...

    async def add_participant(self, conversation_id: str, participant: Participant, position: int) -> None: ...

    async def get_user_display_name(self, user_id: str) -> Optional[str]: ...


class SqlConversationStore:
    def __init__(self, session_maker: Optional[async_sessionmaker] = None):
        if session_maker is None:
            from database import async_session_maker

            session_maker = async_session_maker
        self.session_maker = session_maker

    async def create_conversation(self, record: ConversationRecord) -> None:
        try:
            async with self.session_maker() as db:
                await crud.create_conversation(db, record)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not create conversation {record.id}: {e}") from e

    async def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        try:
            async with self.session_maker() as db:
                row = await crud.get_conversation(db, conversation_id)
                return crud.record_from_row(row) if row is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load conversation {conversation_id}: {e}") from e

    async def list_conversations(self, owner_id: Optional[str] = None, limit: int = 50) -> List[ConversationRecord]:
        try:
            async with self.session_maker() as db:
                rows = await crud.list_conversations(db, owner_id=owner_id, limit=limit)
                return [
                    ConversationRecord(
                        id=row.id,
                        topic=row.topic,
                        status=ConversationStatus(row.status),
                        participants=[crud.participant_from_row(p) for p in row.participants],
                        speaking_order=list(row.speaking_order or []),
                        cursor=row.cursor or 0,
                        user_id=row.owner_id,
                    )
                    for row in rows
                ]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not list conversations: {e}") from e

    async def append_message(self, message: Message) -> None:
        try:
            async with self.session_maker() as db:
                await crud.append_message(db, message)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not store message {message.seq} of {message.conversation_id}: {e}") from e

    async def get_messages_since(self, conversation_id: str, after_seq: int = -1) -> List[Message]:
        try:
            async with self.session_maker() as db:
                rows = await crud.get_messages_since(db, conversation_id, after_seq)
                return [crud.message_from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read messages of {conversation_id}: {e}") from e

    async def update_status(self, conversation_id: str, status: ConversationStatus) -> None:
        try:
            async with self.session_maker() as db:
                found = await crud.update_status(db, conversation_id, status)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not update status of {conversation_id}: {e}") from e
        if not found:
            raise PersistenceError(f"Conversation {conversation_id} not found in store")

    async def save_schedule(self, conversation_id: str, speaking_order: List[str], cursor: int) -> None:
        try:
            async with self.session_maker() as db:
                await crud.save_schedule(db, conversation_id, speaking_order, cursor)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not save schedule of {conversation_id}: {e}") from e

    async def add_participant(self, conversation_id: str, participant: Participant, position: int) -> None:
        try:
            async with self.session_maker() as db:
                await crud.add_participant(db, conversation_id, participant, position)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not add {participant.id} to {conversation_id}: {e}") from e

    async def get_user_display_name(self, user_id: str) -> Optional[str]:
        try:
            async with self.session_maker() as db:
                return await crud.get_user_display_name(db, user_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read user {user_id}: {e}") from e
