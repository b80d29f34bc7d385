"""
Centralized configuration for the Lumina command service.
Secure-by-default: the Anthropic API key MUST be explicitly configured.

Configuration Precedence (highest to lowest):
1. Environment Variables
2. Config Files (.env)
3. Code Defaults (only for non-sensitive, optional values)
"""
import os
import sys
import logging
from dataclasses import dataclass, field
from typing import Optional, List

logger = logging.getLogger(__name__)

# Value shipped in the deployment template; treated the same as "unset"
PLACEHOLDER_API_KEY = "YOUR_ANTHROPIC_API_KEY_HERE"

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


@dataclass
class LuminaConfig:
    """
    Configuration container with validation.

    Every field reads its environment variable at construction time, so tests
    can build an isolated instance with explicit keyword arguments.
    """

    # =========================================================================
    # REQUIRED - No defaults, fail fast if missing
    # =========================================================================

    anthropic_api_key: str = field(default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", ""))

    # =========================================================================
    # OPTIONAL - Sensible defaults for development
    # =========================================================================

    anthropic_model: str = field(default_factory=lambda: os.environ.get("ANTHROPIC_MODEL", DEFAULT_MODEL))

    # Empty means "use the in-process store" (development only)
    redis_url: str = field(default_factory=lambda: os.environ.get("REDIS_URL", ""))

    # Per-user rate limiting
    rate_limit_window_seconds: int = field(default_factory=lambda: int(os.environ.get("LUMINA_RATE_LIMIT_WINDOW_SECONDS", "60")))
    rate_limit_max_requests: int = field(default_factory=lambda: int(os.environ.get("LUMINA_RATE_LIMIT_MAX_REQUESTS", "20")))
    rate_limit_warn_threshold: int = field(default_factory=lambda: int(os.environ.get("LUMINA_RATE_LIMIT_WARN_THRESHOLD", "15")))

    # LLM budgets per use case (timeouts leave headroom inside a 60s outer deadline)
    command_max_tokens: int = field(default_factory=lambda: int(os.environ.get("LUMINA_COMMAND_MAX_TOKENS", "1024")))
    command_timeout_ms: int = field(default_factory=lambda: int(os.environ.get("LUMINA_COMMAND_TIMEOUT_MS", "25000")))
    schedule_max_tokens: int = field(default_factory=lambda: int(os.environ.get("LUMINA_SCHEDULE_MAX_TOKENS", "2048")))
    schedule_timeout_ms: int = field(default_factory=lambda: int(os.environ.get("LUMINA_SCHEDULE_TIMEOUT_MS", "30000")))

    # Upper bound on how long a usage write may hold up a response
    usage_write_timeout_seconds: float = field(default_factory=lambda: float(os.environ.get("LUMINA_USAGE_WRITE_TIMEOUT", "2.0")))

    service_port: int = field(default_factory=lambda: int(os.environ.get("LUMINA_PORT", "8040")))

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def has_api_key(self) -> bool:
        """True when a usable (non-placeholder) Anthropic key is present."""
        return bool(self.anthropic_api_key) and self.anthropic_api_key != PLACEHOLDER_API_KEY

    @property
    def uses_redis(self) -> bool:
        return bool(self.redis_url)

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self, service_name: str = "lumina") -> List[str]:
        """
        Validate configuration and return list of errors.
        Call at service startup to report problems with clear messages.

        Args:
            service_name: Name of service for error messages

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if not self.has_api_key:
            errors.append(
                f"ANTHROPIC_API_KEY is required by {service_name} but not set.\n"
                f"  Set via environment variable: export ANTHROPIC_API_KEY='sk-ant-...'\n"
                f"  Or in .env file: ANTHROPIC_API_KEY=sk-ant-..."
            )

        if self.rate_limit_max_requests < 1:
            errors.append("LUMINA_RATE_LIMIT_MAX_REQUESTS must be at least 1")

        if self.rate_limit_window_seconds < 1:
            errors.append("LUMINA_RATE_LIMIT_WINDOW_SECONDS must be at least 1")

        if not self.redis_url:
            # Not an error: the in-process store works for a single worker
            logger.warning(
                "REDIS_URL not set. Usage records and favorites will be kept "
                "in process memory and lost on restart."
            )

        return errors

    def validate_or_exit(self, service_name: str = "lumina"):
        """Validate configuration and exit with clear error if invalid."""
        errors = self.validate(service_name)
        if errors:
            print(f"\n{'='*60}", file=sys.stderr)
            print(f"CONFIGURATION ERROR - {service_name} cannot start", file=sys.stderr)
            print(f"{'='*60}\n", file=sys.stderr)
            for i, error in enumerate(errors, 1):
                print(f"{i}. {error}\n", file=sys.stderr)
            print(f"{'='*60}", file=sys.stderr)
            sys.exit(1)

    def require_api_key(self) -> str:
        """Return the API key or raise ConfigurationError."""
        if not self.has_api_key:
            raise ConfigurationError("Anthropic API key not configured")
        return self.anthropic_api_key


# Process-wide instance, created lazily
_config: Optional[LuminaConfig] = None


def get_config() -> LuminaConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = LuminaConfig()
    return _config


def reset_config():
    """Drop the cached configuration (used by tests)."""
    global _config
    _config = None
