"""Configuration management for the conversational RAG agent.

Provides immutable configuration using dataclasses with validation,
environment variable loading, and sensible defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from dotenv import load_dotenv

from conversational_rag.core.agent.state import HistoryPolicy
from conversational_rag.exceptions import ConfigurationError

# Load .env file for local development.
# Does not override existing environment variables (deployment configs take precedence)
# Path from config.py: src/conversational_rag/config.py -> 3 parents up = project root
_root_env = Path(__file__).parent.parent.parent / ".env"

if _root_env.exists():
    load_dotenv(_root_env, override=False)

logger = logging.getLogger(__name__)

# Validation bounds
MIN_RETRIEVAL_K: Final[int] = 1
MAX_RETRIEVAL_K: Final[int] = 20
MIN_TEMPERATURE: Final[float] = 0.0
MAX_TEMPERATURE: Final[float] = 2.0
VALID_LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_CHECKPOINT_SCHEMES: Final[tuple[str, ...]] = ("postgresql://", "postgres://")

__all__ = [
    "AppConfig",
    "ConfigurationError",
    "get_config",
]


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Immutable application configuration.

    Attributes:
        openai_api_key: OpenAI API key.
        chat_model: Chat model name for both decision and generation nodes.
        embedding_model: Embedding model name for the vector store.
        temperature: Sampling temperature for the chat model.
        model_timeout: Client-side timeout (seconds) for model calls.
        retrieval_k: Number of passages the retrieval tool requests.
        history_policy: Which messages the generation prompt keeps. None picks
            the default suited to the chat model (see resolve_history_policy).
        source_url: Optional web page indexed at startup.
        checkpoint_database_url: PostgreSQL URL for durable checkpoints.
            In-memory checkpoints are used when empty.
        log_level: Logging level.
        langsmith_api_key: LangSmith API key for observability.
        langsmith_project: LangSmith project name.
        langsmith_tracing_enabled: Whether to enable LangSmith tracing.
    """

    openai_api_key: str = ""
    chat_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    temperature: float = 0.0
    model_timeout: float = 60.0
    retrieval_k: int = 2
    history_policy: HistoryPolicy | None = None
    source_url: str = ""
    checkpoint_database_url: str = ""
    log_level: str = "INFO"
    # LangSmith observability settings
    langsmith_api_key: str = ""
    langsmith_project: str = "conversational-rag"
    langsmith_tracing_enabled: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not MIN_RETRIEVAL_K <= self.retrieval_k <= MAX_RETRIEVAL_K:
            msg = f"retrieval_k must be between {MIN_RETRIEVAL_K} and {MAX_RETRIEVAL_K}"
            raise ConfigurationError(msg)

        if not MIN_TEMPERATURE <= self.temperature <= MAX_TEMPERATURE:
            msg = f"temperature must be between {MIN_TEMPERATURE} and {MAX_TEMPERATURE}"
            raise ConfigurationError(msg)

        if self.model_timeout <= 0:
            msg = "model_timeout must be positive"
            raise ConfigurationError(msg)

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            msg = f"log_level must be one of: {VALID_LOG_LEVELS}"
            raise ConfigurationError(msg)

        if self.checkpoint_database_url and not self.checkpoint_database_url.startswith(
            VALID_CHECKPOINT_SCHEMES
        ):
            msg = (
                "Invalid checkpoint database URL. "
                f"Must start with one of: {VALID_CHECKPOINT_SCHEMES}"
            )
            raise ConfigurationError(msg)

        if self.source_url and not self.source_url.startswith(("http://", "https://")):
            msg = "source_url must be an http(s) URL"
            raise ConfigurationError(msg)

        if not self.openai_api_key:
            logger.warning("OPENAI_API_KEY is not set; model calls will fail")

    @property
    def persistent_checkpoints(self) -> bool:
        """Whether conversation threads survive a process restart."""
        return bool(self.checkpoint_database_url)


def get_config() -> AppConfig:
    """Load configuration from environment variables.

    Returns:
        AppConfig instance with values from environment.

    Raises:
        ConfigurationError: If a variable has an invalid value.
    """
    # Check for LangSmith tracing (supports both environment variable names)
    langsmith_tracing = os.getenv("LANGSMITH_TRACING", os.getenv("LANGCHAIN_TRACING_V2", "false"))
    tracing_enabled = langsmith_tracing.lower() in ("true", "1", "yes")

    history_policy: HistoryPolicy | None = None
    policy_value = os.getenv("GENERATION_HISTORY_POLICY")
    if policy_value:
        try:
            history_policy = HistoryPolicy(policy_value.lower())
        except ValueError as e:
            valid = ", ".join(p.value for p in HistoryPolicy)
            msg = f"GENERATION_HISTORY_POLICY must be one of: {valid}"
            raise ConfigurationError(msg) from e

    try:
        retrieval_k = int(os.getenv("RETRIEVAL_K", "2"))
        temperature = float(os.getenv("OPENAI_TEMPERATURE", "0.0"))
        model_timeout = float(os.getenv("OPENAI_TIMEOUT", "60.0"))
    except ValueError as e:
        msg = f"Invalid numeric configuration value: {e}"
        raise ConfigurationError(msg) from e

    return AppConfig(
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        chat_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        embedding_model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
        temperature=temperature,
        model_timeout=model_timeout,
        retrieval_k=retrieval_k,
        history_policy=history_policy,
        source_url=os.getenv("SOURCE_URL", ""),
        checkpoint_database_url=os.getenv("CHECKPOINT_DATABASE_URL", ""),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        langsmith_api_key=os.getenv("LANGSMITH_API_KEY", os.getenv("LANGCHAIN_API_KEY", "")),
        langsmith_project=os.getenv(
            "LANGSMITH_PROJECT", os.getenv("LANGCHAIN_PROJECT", "conversational-rag")
        ),
        langsmith_tracing_enabled=tracing_enabled,
    )
