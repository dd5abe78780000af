"""
Config Maker
"""

# pyright: basic

__all__ = ("settings",)

from typing import Literal

from pydantic_settings import BaseSettings

from app import __project__, __version__


class Settings(BaseSettings):
    PROJECT_NAME: str = __project__
    PROJECT_VERSION: str = __version__
    API_VERSION: int = 1
    DEBUG: bool = False
    LOG_MESSAGE_MAX_LEN: int = 2000

    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8083
    APP_WORKERS: int = 1
    APP_AUTH_KEY: str

    # Conversation state
    CONVERSATION_BACKEND: Literal["memory", "redis"] = "memory"
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB_CONVERSATIONS: int = 2
    REDIS_PASSWORD: str | None = None
    CONVERSATION_TTL_SECONDS: int = 86400  # 24 hours
    CONVERSATION_MAX_TURNS: int = 100
    CONVERSATION_MAX_ACTIVE: int = 1000  # in-memory backend only
    UNDO_MAX_DEPTH: int = 20

    # Image handles
    STORAGE_DIR: str = "./data"
    MAX_IMAGE_BYTES: int = 50 * 1024 * 1024
    MAX_DIMENSION: int = 8192
    ALLOWED_FORMATS: list[str] = ["png", "jpeg", "webp"]

    # History store
    HISTORY_BACKEND: Literal["memory", "lancedb"] = "lancedb"
    VECTOR_STORE_PATH: str = "./data/history"
    HISTORY_TABLE: str = "tool_history"
    HISTORY_MAX_RECORDS: int = 1000
    HISTORY_STORE_THRESHOLD: float = 70.0
    HISTORY_SIMILAR_K: int = 5
    HISTORY_NEUTRAL_CONFIDENCE: float = 75.0
    HISTORY_DEVIATION_PCT: float = 15.0  # of a parameter's declared range

    # Planner
    GOOGLE_API_KEY: str
    PLANNER_MODEL: str = "gemini-3-flash-preview"
    PLANNER_TIMEOUT_SECONDS: int = 60
    PLANNER_MAX_RETRIES: int = 1
    MAX_PROPOSALS_PER_TURN: int = 5
    HISTORY_CHAR_BUDGET: int = 6000
    HISTORY_RECENT_TURNS: int = 6

    # Anthropic (optional - only used if USE_ANTHROPIC_AI is True)
    USE_ANTHROPIC_AI: bool = False
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_PLANNER_MODEL: str = "claude-sonnet-4-5-20250929"

    # Ground truth
    ANALYSIS_MAX_PIXELS: int = 4_000_000
    ANALYSIS_STEP_TIMEOUT_SECONDS: float = 10.0
    DOMINANT_COLOR_COUNT: int = 9
    DEFAULT_DPI: int = 72
    PRINT_DPI: int = 300
    MIN_PRINT_INCHES: float = 2.0
    MIN_PRINT_SHARPNESS: float = 40.0

    # Parameter validation
    NOT_FOUND_DISTANCE: float = 50.0
    WEAK_MATCH_DISTANCE: float = 30.0
    MATCH_DISTANCE: float = 30.0
    COLOR_SAMPLE_MIN: int = 1000
    COLOR_SAMPLE_MAX: int = 50_000
    COLOR_SAMPLE_RATIO: float = 0.01
    COVERAGE_MAX_PCT: float = 95.0
    COVERAGE_MIN_PCT: float = 1.0
    MAX_OUTPUT_MEGAPIXELS: float = 16.0
    LARGE_IMAGE_MEGAPIXELS: float = 25.0
    APPLY_ADJUSTED_PARAMETERS: bool = True

    # Execution & results
    TOOL_TIMEOUT_SECONDS: float = 30.0
    CHANGE_THRESHOLD: float = 10.0
    QUALITY_RETRY_MAX: int = 1

    # Confidence
    MULTI_TOOL_PENALTY: float = 5.0
    MULTI_TOOL_PENALTY_AFTER: int = 2

    CORRECTION_PHRASES: list[str] = [
        "too much",
        "too little",
        "not enough",
        "incorrect",
        "wrong",
        "undo that",
        "revert",
        "go back",
        "try again",
        "more precise",
        "more selective",
        "be more",
        "instead",
        "just the",
        "only the",
        "just inside",
        "only inside",
        "not quite",
        "didn't work",
        "knocked out too",
        "removed too",
    ]

    class Config:
        env_file = ".env"
        env_prefix = "PXP_"
        env_file_encoding = "utf-8"
        extra = "ignore"
        case_sensitive = True


settings = Settings()  # type: ignore[call-arg]
