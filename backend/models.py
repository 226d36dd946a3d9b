from database import Base
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from utils.serializers import utcnow as _utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    display_name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True)
    owner_id = Column(String, nullable=True, index=True)
    topic = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="active", index=True)
    speaking_order = Column(JSON, nullable=False, default=list)  # Shuffled participant ids
    cursor = Column(Integer, nullable=False, default=0)  # Index into speaking_order of the next speaker
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, index=True)

    participants = relationship(
        "ConversationParticipant",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="ConversationParticipant.position",
    )
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.seq",
    )


class ConversationParticipant(Base):
    __tablename__ = "conversation_participants"
    __table_args__ = (UniqueConstraint("conversation_id", "participant_id", name="ux_conversation_participant"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    participant_id = Column(String, nullable=False)
    position = Column(Integer, nullable=False)  # Registration order
    kind = Column(String(16), nullable=False)  # "known" or "custom"
    persona_prompt = Column(Text, nullable=False)
    provider = Column(String(32), nullable=False)
    model_id = Column(String, nullable=False)
    api_key = Column(String, nullable=True)  # Custom participants only
    endpoint = Column(String, nullable=True)  # Custom participants only
    description = Column(Text, nullable=True)
    joined_at = Column(DateTime(timezone=True), default=_utcnow)

    conversation = relationship("Conversation", back_populates="participants")


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("conversation_id", "seq", name="ux_messages_conversation_seq"),
    )

    id = Column(String(36), primary_key=True)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    seq = Column(Integer, nullable=False)  # 0-based transcript position
    sender = Column(String, nullable=False)
    text = Column(Text, nullable=False)
    is_user = Column(Boolean, default=False)
    kind = Column(String(16), nullable=False, default="participant")
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    conversation = relationship("Conversation", back_populates="messages")
