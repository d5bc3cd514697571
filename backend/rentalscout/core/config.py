from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    OPENAI_API_KEY: str | None = None
    # Chat model is deployment configuration, there is deliberately no default
    CHAT_MODEL: str | None = None

    EMBEDDING_PROVIDER: str = "openai"  # openai | sentence-transformers
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSIONS: int = 1536

    LANCEDB_URI: str = "data/lancedb"
    LISTINGS_TABLE: str = "listings"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Hybrid ranking
    VECTOR_WEIGHT: float = 0.7
    LEXICAL_WEIGHT: float = 0.3
    OVERFETCH_FACTOR: int = 10
    CANDIDATE_CEILING: int = 200
    SCAN_PAGE_SIZE: int = 1000
    MAX_SEARCH_LIMIT: int = 100

    # Timeouts (seconds) and retry policy for upstream calls
    EMBEDDING_TIMEOUT: float = 10.0
    LLM_TIMEOUT: float = 60.0
    STORE_TIMEOUT: float = 10.0
    MAX_RETRIES: int = 3
    RETRY_BACKOFF: float = 0.5

    # Agent
    MAX_TOOL_ROUNDS: int = 5
    HISTORY_WINDOW: int = 20
    MAX_MESSAGE_LENGTH: int = 1000

    # Conversations
    CONVERSATION_RETENTION_DAYS: int = 30
    RETENTION_SWEEP_INTERVAL: float = 3600.0

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

settings = Settings()
