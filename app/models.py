from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: str  # "system", "user" or "assistant"
    content: str
    images: list[str] | None = None


class WhatsAppMessage(BaseModel):
    from_number: str
    message_id: str
    timestamp: str
    text: str
    type: str
    media_id: str | None = None


class InboundMessage(BaseModel):
    """Transport-neutral view of one inbound message."""

    sender_id: str
    text: str
    has_attachment: bool = False
    attachment_bytes: bytes | None = None


class HealthChecks(BaseModel):
    ollama: bool
    database: bool


class HealthResponse(BaseModel):
    status: str
    checks: HealthChecks


class TranscriptEntry(BaseModel):
    role: str
    content: str
    created_at: str = ""


class UserRecord(BaseModel):
    id: str
    conversation_state: str | None = None  # JSON, see app.conversation.state
    last_training_at: str | None = None
    training_data_size: int = 0
    personalized_model_id: str | None = None
    created_at: str = ""


class FactMatch(BaseModel):
    content: str
    similarity: float


class StoredEmbedding(BaseModel):
    id: str
    content: str
    embedding: list[float]


class ActivityLog(BaseModel):
    id: int
    user_id: str
    activity_type: str
    details: dict[str, str] = Field(default_factory=dict)
    activity_at: str = ""
    is_archived: bool = False


class Reminder(BaseModel):
    id: int
    user_id: str
    due_at: str  # UTC, "YYYY-MM-DD HH:MM:SS"
    description: str
    sent: bool = False


class AIPreference(BaseModel):
    user_id: str
    ai_type: str
    ai_name: str
    ai_description: str = ""
    focus_areas: list[str] = Field(default_factory=list)
    communication_style: str | None = None
    preferred_language: str = "id"
    updated_at: str = ""
