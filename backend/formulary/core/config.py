from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Azure OpenAI Configuration (classifier + embeddings)
    AZURE_OPENAI_API_KEY: Optional[str] = None
    AZURE_OPENAI_ENDPOINT: Optional[str] = None
    AZURE_OPENAI_EMBEDDING_DEPLOYMENT: str = "text-embedding-3-small"
    AZURE_OPENAI_CHAT_DEPLOYMENT: str = "gpt-4o-mini"
    AZURE_OPENAI_API_VERSION: str = "2024-02-15-preview"
    EMBEDDING_DIMENSION: int = 1536

    # Vector index persistence
    INDEX_DIR: str = "data/faiss/formulary"

    # Drug classifier
    CLASSIFIER_ENABLED: bool = True
    CLASSIFIER_TIMEOUT_SECONDS: float = 4.0
    CLASSIFIER_HISTORY_TURNS: int = 6

    # Retrieval
    RETRIEVAL_LIMIT: int = 6
    RETRIEVAL_MAX_LIMIT: int = 12
    COMPARISON_PER_DRUG_LIMIT: int = 5

    # Response cache
    RESPONSE_CACHE_TTL_SECONDS: int = 300

    # Parser thresholds
    MIN_SECTION_LENGTH: int = 120
    MIN_ENTRY_LENGTH: int = 80

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "pretty"
    LOG_FILE: Optional[str] = None
    ENVIRONMENT: str = "development"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def azure_configured(self) -> bool:
        return bool(self.AZURE_OPENAI_API_KEY and self.AZURE_OPENAI_ENDPOINT)


settings = Settings()
