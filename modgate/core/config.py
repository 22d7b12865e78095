"""
ModGate - Configuration Module
==============================

Centralized configuration management with environment variable validation.

DESIGN:
    This module provides a single source of truth for all configuration,
    loaded from environment variables at startup (main.py loads .env first).

    Key patterns:
    - Singleton pattern via get_config() ensures one Config instance
    - Validation happens once at load time, not on every access
    - Role helpers centralize the "elevated" and "effectively roleless" checks
"""

import os
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set


# =============================================================================
# Configuration Dataclass
# =============================================================================

@dataclass
class Config:
    """
    Bot configuration loaded from environment variables.

    DESIGN:
        Only the token and guild are required. Everything else has a
        default that matches the moderation thresholds the bot shipped with.
        All IDs are integers to prevent string comparison bugs.
    """

    # -------------------------------------------------------------------------
    # Required: Discord
    # -------------------------------------------------------------------------

    discord_token: str
    guild_id: int

    # -------------------------------------------------------------------------
    # Optional: Channels & Roles
    # -------------------------------------------------------------------------

    report_channel_id: Optional[int] = None  # Reviewer log channel for reports
    trusted_role_id: Optional[int] = None  # Granted when a held message is confirmed
    elevated_role_ids: Set[int] = field(default_factory=set)  # Exempt + may review
    ignored_role_ids: Set[int] = field(default_factory=set)  # Not counted as "real" roles
    exempt_thread_parent_ids: Set[int] = field(default_factory=set)

    # -------------------------------------------------------------------------
    # Optional: Link Gate
    # -------------------------------------------------------------------------

    allowed_hosts: Set[str] = field(default_factory=set)
    blocked_hosts: Set[str] = field(default_factory=set)

    # -------------------------------------------------------------------------
    # Optional: Flood & Duplicate Windows (seconds)
    # -------------------------------------------------------------------------

    flood_threshold: int = 3
    flood_window: int = 4
    duplicate_threshold: int = 4
    duplicate_window: int = 30

    # -------------------------------------------------------------------------
    # Optional: Escalation
    # -------------------------------------------------------------------------

    kick_violation_threshold: int = 2  # Kick once violation_count exceeds this

    # -------------------------------------------------------------------------
    # Optional: External Classifier
    # -------------------------------------------------------------------------

    classifier_enabled: bool = False
    classifier_url: Optional[str] = None
    classifier_timeout: int = 10
    classifier_delete_threshold: float = 0.80
    classifier_report_threshold: float = 0.60
    temp_exemption_minutes: int = 15

    # -------------------------------------------------------------------------
    # Optional: Webhooks
    # -------------------------------------------------------------------------

    error_webhook_url: Optional[str] = None

    @property
    def history_retention(self) -> int:
        """Seconds of history kept; also the sweep interval."""
        return max(self.flood_window, self.duplicate_window) * 2


# =============================================================================
# Embed Colors
# =============================================================================

class EmbedColors:
    """Standardized color palette for notices and reports."""

    BLUE = 0x3498DB

    ROBOT_CHECK = 0xFFCC00
    STOP = 0xFF0000

    INFO = BLUE


# =============================================================================
# Validation
# =============================================================================

class ConfigValidationError(Exception):
    """Raised when required configuration is missing or invalid."""

    pass


def _parse_int(value: Optional[str], name: str) -> int:
    """
    Parse string to integer with descriptive error handling.

    Raises:
        ConfigValidationError: If value is missing or not a valid integer.
    """
    if not value:
        raise ConfigValidationError(f"Missing required: {name}")
    try:
        return int(value)
    except ValueError:
        raise ConfigValidationError(f"Invalid integer for {name}: {value}")


def _parse_int_optional(value: Optional[str]) -> Optional[int]:
    """Parse optional string to integer, returning None on failure."""
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_int_set(value: Optional[str]) -> Set[int]:
    """
    Parse comma-separated string to set of integers.

    Args:
        value: Comma-separated string of integers (e.g., "123,456,789").

    Returns:
        Set of parsed integers, empty set if input is None or empty.
    """
    if not value:
        return set()
    result = set()
    for part in value.split(","):
        part = part.strip()
        if part:
            try:
                result.add(int(part))
            except ValueError:
                pass  # Skip invalid entries silently
    return result


def _parse_str_set(value: Optional[str]) -> Set[str]:
    """Parse comma-separated hostnames, lowercased and stripped."""
    if not value:
        return set()
    return {part.strip().lower() for part in value.split(",") if part.strip()}


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse a truthy env flag ("1", "true", "yes", "on")."""
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_int_with_default(
    value: Optional[str],
    default: int,
    name: str,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
) -> int:
    """
    Parse optional integer with default and range validation.

    Returns:
        Parsed integer clamped to the valid range, or default.
    """
    if not value:
        return default
    from modgate.core.logger import logger
    try:
        parsed = int(value)
    except ValueError:
        logger.warning(f"Config {name}='{value}' invalid, using default {default}")
        return default
    if min_val is not None and parsed < min_val:
        logger.warning(f"Config {name}={parsed} below min {min_val}, using {min_val}")
        return min_val
    if max_val is not None and parsed > max_val:
        logger.warning(f"Config {name}={parsed} above max {max_val}, using {max_val}")
        return max_val
    return parsed


def _parse_float_with_default(value: Optional[str], default: float, name: str) -> float:
    """Parse a probability in [0, 1], falling back to default when invalid."""
    if not value:
        return default
    from modgate.core.logger import logger
    try:
        parsed = float(value)
    except ValueError:
        logger.warning(f"Config {name}='{value}' invalid, using default {default}")
        return default
    if not 0.0 <= parsed <= 1.0:
        logger.warning(f"Config {name}={parsed} outside [0, 1], using default {default}")
        return default
    return parsed


def _validate_url(value: Optional[str], name: str) -> Optional[str]:
    """Return the URL if it has an http(s) scheme, else None."""
    if not value:
        return None
    if not value.startswith(("https://", "http://")):
        from modgate.core.logger import logger
        logger.warning(f"Config {name} invalid URL format, ignoring")
        return None
    return value


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config() -> Config:
    """
    Load and validate configuration from environment variables.

    DESIGN:
        Validates all required variables upfront before creating the
        Config object. This fail-fast approach prevents partial
        initialization and unclear runtime errors.

    Raises:
        ConfigValidationError: If any required variable is missing or invalid.
    """
    missing = []

    discord_token = os.getenv("DISCORD_TOKEN")
    if not discord_token:
        missing.append("DISCORD_TOKEN")

    guild_id_str = os.getenv("GUILD_ID")
    if not guild_id_str:
        missing.append("GUILD_ID")

    if missing:
        raise ConfigValidationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    classifier_url = _validate_url(os.getenv("CLASSIFIER_URL"), "CLASSIFIER_URL")

    return Config(
        discord_token=discord_token,
        guild_id=_parse_int(guild_id_str, "GUILD_ID"),
        report_channel_id=_parse_int_optional(os.getenv("REPORT_CHANNEL_ID")),
        trusted_role_id=_parse_int_optional(os.getenv("TRUSTED_ROLE_ID")),
        elevated_role_ids=_parse_int_set(os.getenv("ELEVATED_ROLE_IDS")),
        ignored_role_ids=_parse_int_set(os.getenv("IGNORED_ROLE_IDS")),
        exempt_thread_parent_ids=_parse_int_set(os.getenv("EXEMPT_THREAD_PARENT_IDS")),
        allowed_hosts=_parse_str_set(os.getenv("ALLOWED_HOSTS")),
        blocked_hosts=_parse_str_set(os.getenv("BLOCKED_HOSTS")),
        flood_threshold=_parse_int_with_default(
            os.getenv("FLOOD_MESSAGE_THRESHOLD"), 3, "FLOOD_MESSAGE_THRESHOLD", min_val=1
        ),
        flood_window=_parse_int_with_default(
            os.getenv("FLOOD_MESSAGE_TIME"), 4, "FLOOD_MESSAGE_TIME", min_val=1
        ),
        duplicate_threshold=_parse_int_with_default(
            os.getenv("DUPLICATE_MESSAGE_THRESHOLD"), 4, "DUPLICATE_MESSAGE_THRESHOLD", min_val=1
        ),
        duplicate_window=_parse_int_with_default(
            os.getenv("DUPLICATE_MESSAGE_TIME"), 30, "DUPLICATE_MESSAGE_TIME", min_val=1
        ),
        kick_violation_threshold=_parse_int_with_default(
            os.getenv("KICK_VIOLATION_THRESHOLD"), 2, "KICK_VIOLATION_THRESHOLD", min_val=1
        ),
        classifier_enabled=_parse_bool(os.getenv("CLASSIFIER_ENABLED")),
        classifier_url=classifier_url,
        classifier_timeout=_parse_int_with_default(
            os.getenv("CLASSIFIER_TIMEOUT"), 10, "CLASSIFIER_TIMEOUT", min_val=1, max_val=60
        ),
        classifier_delete_threshold=_parse_float_with_default(
            os.getenv("CLASSIFIER_DELETE_THRESHOLD"), 0.80, "CLASSIFIER_DELETE_THRESHOLD"
        ),
        classifier_report_threshold=_parse_float_with_default(
            os.getenv("CLASSIFIER_REPORT_THRESHOLD"), 0.60, "CLASSIFIER_REPORT_THRESHOLD"
        ),
        temp_exemption_minutes=_parse_int_with_default(
            os.getenv("TEMP_EXEMPTION_MINUTES"), 15, "TEMP_EXEMPTION_MINUTES", min_val=1
        ),
        error_webhook_url=_validate_url(os.getenv("ERROR_WEBHOOK_URL"), "ERROR_WEBHOOK_URL"),
    )


# =============================================================================
# Global Config Instance
# =============================================================================

_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance, loading if needed.

    Raises:
        ConfigValidationError: On first call if config is invalid.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def blocked_and_allowed_hosts(config: Config) -> List[str]:
    """Blocked hosts also covered by the allow list. The block list wins for these."""
    return sorted(
        blocked for blocked in config.blocked_hosts
        if any(blocked == allowed or blocked.endswith("." + allowed) for allowed in config.allowed_hosts)
    )


def validate_and_log_config() -> Config:
    """
    Validate configuration and log a summary at startup.

    Raises:
        ConfigValidationError: If required configuration is missing.
    """
    from modgate.core.logger import logger

    config = get_config()

    if not config.report_channel_id:
        logger.info("Optional config not set: REPORT_CHANNEL_ID (reports go to logs only)")
    if not config.trusted_role_id:
        logger.info("Optional config not set: TRUSTED_ROLE_ID (confirmations grant no role)")
    if config.classifier_enabled and not config.classifier_url:
        logger.warning("CLASSIFIER_ENABLED is set but CLASSIFIER_URL is missing, classifier disabled")

    overlap = blocked_and_allowed_hosts(config)
    if overlap:
        logger.warning("Hosts On Both Allow And Block Lists", [
            ("Hosts", ", ".join(overlap)),
            ("Effect", "Blocked"),
        ])

    logger.tree("Configuration Validated", [
        ("Guild", str(config.guild_id)),
        ("Elevated Roles", str(len(config.elevated_role_ids))),
        ("Allowed Hosts", str(len(config.allowed_hosts))),
        ("Blocked Hosts", str(len(config.blocked_hosts))),
        ("Flood", f"{config.flood_threshold} msgs / {config.flood_window}s"),
        ("Duplicates", f"{config.duplicate_threshold} msgs / {config.duplicate_window}s"),
        ("Classifier", "Enabled" if config.classifier_enabled and config.classifier_url else "Disabled"),
    ], emoji="⚙️")

    return config


# =============================================================================
# Role Helpers
# =============================================================================

def has_elevated_role(role_ids: Optional[Iterable[int]], config: Config) -> bool:
    """Check whether any of the given roles is an elevated (reviewer) role."""
    if not role_ids:
        return False
    return any(role_id in config.elevated_role_ids for role_id in role_ids)


def effective_role_count(role_ids: Iterable[int], config: Config) -> int:
    """
    Count roles that are not in the ignored set.

    The guild default role is included in member role lists, so a member
    with no assigned roles has an effective count of 1.
    """
    return sum(1 for role_id in role_ids if role_id not in config.ignored_role_ids)


__all__ = [
    "Config",
    "ConfigValidationError",
    "EmbedColors",
    "get_config",
    "load_config",
    "validate_and_log_config",
    "has_elevated_role",
    "effective_role_count",
]
