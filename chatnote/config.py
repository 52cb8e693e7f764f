"""Configuration management for the ChatNote context engine."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)


def _model_list(name: str, default: str) -> list[str]:
    """Read an ordered, comma-separated model list from the environment.

    Returns:
        The model identifiers in the order they were given.
    """
    return [
        model.strip() for model in os.getenv(name, default).split(",") if model.strip()
    ]


class Config:
    """Application configuration loaded from environment variables."""

    # OpenAI-compatible API Configuration
    @classmethod
    def get_openai_api_key(cls) -> str:
        """Get the API key from environment variables.

        Returns:
            API key from environment or empty string if not set.
        """
        return os.getenv("OPENAI_API_KEY", "")

    OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    OPENAI_LOG_LEVEL: str = os.getenv("OPENAI_LOG_LEVEL", "WARNING").upper()

    # Application Settings
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Semantic Retrieval Configuration
    CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "1000"))
    CHUNK_OVERLAP: int = int(os.getenv("CHUNK_OVERLAP", "200"))
    MAX_INDEXED_DOCUMENTS: int = int(os.getenv("MAX_INDEXED_DOCUMENTS", "8"))
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")

    # Chat Model Configuration
    CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "2048"))
    CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.7"))

    # Model groups, each tried in order on failure
    VISION_MODELS: list[str] = _model_list(
        "VISION_MODELS",
        "meta-llama/llama-4-scout-17b-16e-instruct,"
        "meta-llama/llama-4-maverick-17b-128e-instruct",
    )
    QUICK_MODELS: list[str] = _model_list("QUICK_MODELS", "llama-3.3-70b-versatile")
    AUTO_MODELS: list[str] = _model_list(
        "AUTO_MODELS", ",".join([*VISION_MODELS, *QUICK_MODELS])
    )
    REASONING_MODELS: list[str] = _model_list(
        "REASONING_MODELS",
        "openai/gpt-oss-120b,openai/gpt-oss-20b,qwen/qwen3-32b",
    )
    ADVANCED_MODELS: list[str] = _model_list(
        "ADVANCED_MODELS", "moonshotai/kimi-k2-instruct-0905,llama-3.3-70b-versatile"
    )

    # Question Classification Configuration
    CLASSIFICATION_MODELS: list[str] = _model_list(
        "CLASSIFICATION_MODELS",
        "moonshotai/kimi-k2-instruct-0905,openai/gpt-oss-safeguard-20b",
    )
    CLASSIFIER_MAX_TOKENS: int = int(os.getenv("CLASSIFIER_MAX_TOKENS", "300"))
    CLASSIFIER_TEMPERATURE: float = float(os.getenv("CLASSIFIER_TEMPERATURE", "0.0"))

    # Token Budget Configuration
    DEFAULT_TOKEN_CEILING: int = int(os.getenv("DEFAULT_TOKEN_CEILING", "8000"))

    # API Header Configuration
    API_USER_AGENT: str = os.getenv("API_USER_AGENT", "ChatNote/1.0")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration values.

        Raises:
            ValueError: If OPENAI_API_KEY is not set.
        """
        if not cls.get_openai_api_key():
            msg = (
                "OPENAI_API_KEY is required. Please set it in .env file or environment."
            )
            raise ValueError(msg)

    @classmethod
    def is_development(cls) -> bool:
        """Check if running in development environment.

        Returns:
            True if environment is development.
        """
        return cls.ENVIRONMENT.lower() == "development"

    @classmethod
    def setup_logging(cls) -> None:
        """Setup basic logging configuration.

        Configure logging once at application startup with:
        - Console output for all levels
        - Simple, readable format
        - Configurable level via environment variable
        """
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )

        logging.getLogger("openai").setLevel(
            getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
        )
        logging.getLogger("httpx").setLevel(
            getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
        )

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    @classmethod
    def get_api_headers(cls) -> dict[str, str]:
        """Build default headers for outbound API calls.

        Returns:
            Mapping of header names to values used on outbound HTTP requests.
        """
        headers: dict[str, str] = {}

        if cls.API_USER_AGENT:
            headers["User-Agent"] = cls.API_USER_AGENT

        return headers


config = Config()
