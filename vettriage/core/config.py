"""Application configuration."""
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Agora RTC (token signing)
    agora_appid: Optional[str] = None
    agora_appcertificate: Optional[str] = None
    agora_token: Optional[str] = None

    # Agora Conversational AI REST
    agora_rest_key: Optional[str] = None
    agora_rest_secret: Optional[str] = None
    agora_api_base: str = "https://api.agora.io/api/conversational-ai-agent/v2"

    # LLM / TTS vendors (proxied to the client via /config)
    openai_key: Optional[str] = None
    groq_key: Optional[str] = None
    llm_aws_bedrock_key: Optional[str] = None
    llm_aws_bedrock_access_key: Optional[str] = None
    llm_aws_bedrock_secret_key: Optional[str] = None
    tts_minimax_key: Optional[str] = None
    tts_minimax_groupid: Optional[str] = None
    avatar_akool_key: Optional[str] = None

    # Hosted agent pipeline
    llm_url: str = "https://api.groq.com/openai/v1/chat/completions"
    llm_model: str = "llama-3.3-70b-versatile"

    # Triage analysis (OpenAI-compatible chat completions)
    analysis_base_url: str = "https://api.groq.com/openai/v1"
    analysis_model: str = "llama-3.3-70b-versatile"
    openai_analysis_model: str = "gpt-4o-mini"

    # Database
    database_url: str = "sqlite+aiosqlite:///./vettriage.db"

    # Client orchestration
    proxy_base_url: str = "http://localhost:9001"
    token_lifetime_seconds: int = 3600
    agent_uid: int = 10001
    agent_idle_timeout: int = 120
    silence_timeout_ms: int = 15000
    intake_mode: str = "local"

    # Server
    host: str = "0.0.0.0"
    port: int = 9001

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def has_agora_rest_credentials(self) -> bool:
        """Whether the Conversational AI REST credentials are all present."""
        return bool(self.agora_appid and self.agora_rest_key and self.agora_rest_secret)


settings = Settings()
