"""Application configuration and environment-driven settings.

Defines the Settings class based on pydantic-settings to centralize configuration for:
- API key and embedding model name
- Data stores (the SQLite/SQLAlchemy catalog and the per-topic lexical index directory)
- Hybrid retrieval defaults (alpha and the three K cut-offs)
- BM25 scoring knobs
- Ingestion parameters (chunking, embedding batch size)

A warning is logged if OPENAI_API_KEY is not set; embedding calls will then fail with
the provider's own authentication error.
"""
import logging
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Strongly-typed application settings loaded from environment variables.

    Uses pydantic-settings to populate fields from a .env file or process env.
    See individual field names for semantics and safe defaults.
    """
    # Required for embedding generation
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key")

    # Models
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"  # 1536 dims
    OPENAI_TIMEOUT_SECONDS: float = 30.0

    # Data stores
    DATA_DIR: Path = Path("data")
    DATABASE_URL: str = ""  # empty -> sqlite file under DATA_DIR
    INDEX_DIR: Path | None = None  # empty -> DATA_DIR / "indexes"

    # Hybrid retrieval defaults (runtime tunables are seeded from these)
    HYBRID_ALPHA: float = 0.6  # weight of the semantic score
    K_SEMANTIC: int = 200
    K_LEXICAL: int = 200
    K_CONTEXT: int = 30

    # BM25 (Lucene defaults)
    BM25_K1: float = 1.2
    BM25_B: float = 0.75

    # Ingestion
    CHUNK_SIZE: int = 200  # whitespace tokens per chunk
    CHUNK_STRIDE: int = 150  # tokens between chunk starts
    EMBEDDING_BATCH_SIZE: int = 64

    LOG_LEVEL: str = "INFO"

    # Derived
    @property
    def database_url(self) -> str:
        """SQLAlchemy URL of the chunk/embedding catalog.

        Returns:
            str: DATABASE_URL when set, otherwise a SQLite file inside DATA_DIR.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"sqlite:///{(self.DATA_DIR / 'coverage.db').as_posix()}"

    @property
    def index_dir(self) -> Path:
        """Base directory holding one lexical index sub-directory per topic."""
        return self.INDEX_DIR or self.DATA_DIR / "indexes"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()

if not settings.OPENAI_API_KEY:
    # Avoid raising so retrieval over pre-computed data and index maintenance still work
    logger.warning("OPENAI_API_KEY not set. Set it in .env before ingesting or querying.")
