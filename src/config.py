from typing import List, Optional
from pydantic import PostgresDsn, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Patent Research Assistant"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/v1"

    # "development" enables local model providers and the local dev identity
    APP_MODE: str = "production"
    LOG_LEVEL: str = "INFO"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "patents"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None

    # Auth
    SECRET_KEY: str = "change-me"  # openssl rand -hex 32
    JWT_ALGORITHM: str = "HS256"
    CRON_SECRET: Optional[str] = None

    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return str(PostgresDsn.build(
            scheme="postgresql+asyncpg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_SERVER,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        ))

    @property
    def is_development(self) -> bool:
        return self.APP_MODE.lower() == "development"

    # Local providers (development only)
    LOCAL_MODELS_ENABLED: bool = True
    LOCAL_PROVIDER: str = "ollama"  # ollama | lmstudio
    LOCAL_PROBE_TIMEOUT_SECONDS: float = 3.0
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    LMSTUDIO_BASE_URL: str = "http://localhost:1234"

    # Hosted providers, tried in order after the local provider
    LLM_HOSTED_PROVIDERS: List[str] = ["openai", "anthropic"]
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL_CHAT: str = "gpt-5"
    OPENAI_REASONING_EFFORT: Optional[str] = "medium"
    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_MODEL_CHAT: str = "claude-sonnet-4-5"

    # Search provider
    VALYU_API_KEY: Optional[str] = None
    VALYU_BASE_URL: str = "https://api.valyu.ai/v1"
    VALYU_PATENT_SOURCE: str = "valyu/valyu-patents"

    # Code sandbox
    DAYTONA_API_KEY: Optional[str] = None
    DAYTONA_API_URL: Optional[str] = None
    DAYTONA_TARGET: Optional[str] = None
    CODE_MAX_CHARS: int = 10000

    # Chat
    PATENT_CACHE_TTL_MINUTES: int = 60
    MAX_TOOL_STEPS: int = 20
    MAX_HISTORY_MESSAGES: int = 40

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env")

settings = Settings()
