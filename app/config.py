from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # WhatsApp Cloud API
    whatsapp_access_token: str
    whatsapp_phone_number_id: str
    whatsapp_verify_token: str
    whatsapp_app_secret: str
    allowed_phone_numbers: list[str]

    @field_validator("allowed_phone_numbers", mode="before")
    @classmethod
    def parse_phone_numbers(cls, v: object) -> object:
        if isinstance(v, str):
            return [n.strip() for n in v.split(",") if n.strip()]
        if isinstance(v, (int, float)):
            return [str(int(v))]
        return v

    # Ollama
    ollama_base_url: str = "http://ollama:11434"
    ollama_model: str = "qwen3:8b"
    system_prompt: str = (
        "You are a helpful AI assistant integrated with WhatsApp. "
        "Provide clear, concise, and helpful responses. "
        "You remember the context of the conversation, including the last image sent. "
        "Answer in the same language the user writes in."
    )
    completion_max_tokens: int = 1024
    provider_timeout_seconds: float = 60.0
    conversation_max_messages: int = 20

    # Database
    database_path: str = "data/jek.db"

    # Embeddings & memory
    embedding_model: str = "nomic-embed-text"
    dedup_threshold: float = 0.9
    relevance_threshold: float = 0.75
    retrieval_top_k: int = 3

    # Calendar-day comparisons (daily archive prompt, reminder parsing)
    timezone: str = "Asia/Jakarta"

    # Background jobs
    reminder_interval_seconds: int = 60
    training_sweep_interval_hours: int = 6
    training_dir: str = "data/training"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True
    log_file: str = "data/jek.log"

    # Rate limiting
    rate_limit_max: int = 10
    rate_limit_window: int = 60

    model_config = {"env_file": ".env"}
