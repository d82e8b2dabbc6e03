from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "ManaQuery"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "postgresql+asyncpg://localhost:5432/manaquery"

    scryfall_api_url: str = "https://api.scryfall.com"

    anthropic_api_key: str = ""
    ai_model: str = "claude-sonnet-4-20250514"

    # AI fallback only runs when this is set AND an API key is configured
    ai_fallback_enabled: bool = False

    # Live validation against the card-search service (disable for offline runs)
    live_validation_enabled: bool = True

    # Bumped to invalidate every cached translation after a compiler change
    cache_salt: str = "v1"

    cors_allowed_origins: list[str] = ["*"]


settings = Settings()


# =============================================================================
# INPUT LIMITS
# =============================================================================

MAX_INPUT_LENGTH = 500
MIN_INPUT_LENGTH = 3
MAX_SCRYFALL_QUERY_LENGTH = 400
MAX_QUERY_PARAMETERS = 15
MAX_REPEATED_CHARACTERS = 6
MIN_ALPHANUMERIC_RATIO = 0.5

# =============================================================================
# QUERY CACHE
# =============================================================================

CACHE_TTL_SECONDS = 30 * 60
PERSISTENT_CACHE_TTL_SECONDS = 48 * 60 * 60
CACHE_MAX_SIZE = 1000
CACHE_MIN_CONFIDENCE = 0.7

# =============================================================================
# RATE LIMITS
# =============================================================================
# Session <= IP <= global must hold.

RATE_LIMIT_WINDOW_SECONDS = 60
RATE_LIMIT_PER_SESSION = 20
RATE_LIMIT_PER_IP = 30
RATE_LIMIT_GLOBAL = 1000
DEFAULT_CLIENT_IP = "unknown"

# =============================================================================
# LIVE VALIDATION
# =============================================================================

OVERLY_BROAD_THRESHOLD = 1500
FETCH_TIMEOUT_SECONDS = 15.0
MAX_FETCH_RETRIES = 2
RETRY_BACKOFF_SECONDS = 0.4
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Overall budget for one validate-and-relax pass, retries included
LIVE_VALIDATION_DEADLINE_SECONDS = 20.0

# Confidence adjustments from live results
ZERO_RESULTS_PENALTY = 0.2
RELAXATION_PENALTY = 0.1
OVERLY_BROAD_PENALTY = 0.05

# =============================================================================
# RULES AND FEEDBACK
# =============================================================================

RULE_MATCH_MIN_CONFIDENCE = 0.8
VECTOR_MATCH_MIN_SIMILARITY = 0.75
FEEDBACK_BATCH_SIZE = 5
FEEDBACK_MIN_RULE_CONFIDENCE = 0.5

# Logs are written only when the translation is worth inspecting
TELEMETRY_CONFIDENCE_THRESHOLD = 0.8

# =============================================================================
# CONFIDENCE SCORING
# =============================================================================

CONFIDENCE_BASE = 0.5
CONFIDENCE_MAPPED_WEIGHT = 0.5
CONFIDENCE_WARNING_PENALTY = 0.1
CONFIDENCE_AMBIGUITY_PENALTY = 0.05
CONFIDENCE_FLOOR = 0.1

# Below this, deterministic output is considered insufficient coverage
DETERMINISTIC_MIN_CONFIDENCE = 0.6

CONFIDENCE_BUCKETS: tuple[tuple[float, str], ...] = (
    (0.9, "High"),
    (0.75, "Good"),
    (0.6, "Moderate"),
)
