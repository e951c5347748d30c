"""
System Constants and Enumerations

Constants shared by the cache tiers, the orchestrator and the logging layer.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic values
- Type-safe enums for tier and outcome labels
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Cache processing stages used as the ``stage`` field of log entries.

    Format: {SEQUENCE}_{DESCRIPTIVE_NAME}
    """

    INITIALIZATION = "2.0_CACHE_INITIALIZATION"
    L1_LOOKUP = "2.1_L1_CACHE_LOOKUP"
    L2_LOOKUP = "2.2_L2_CACHE_LOOKUP"
    WRITE_THROUGH = "2.3_WRITE_THROUGH"
    INVALIDATION = "2.4_INVALIDATION"
    PRODUCER = "2.5_PRODUCER_CALL"
    REDIS = "REDIS"
    RECONNECT = "REDIS.RECONNECT"


# ============================================================================
# Cache Tiers
# ============================================================================


class CacheTier(str, Enum):
    """
    Cache tiers.

    L1: In-process cache (fastest, no network)
    L2: Redis shared cache (network round trip)
    """

    L1 = "l1"
    L2 = "l2"


class ProducerOutcome(str, Enum):
    """How a producer invocation ended."""

    VALUE = "value"
    EMPTY = "empty"
    ERROR = "error"
    UNSUPPORTED = "unsupported"


# ============================================================================
# Cache Markers
# ============================================================================

# Written to both tiers when a producer reports "no value". Never valid JSON,
# so it cannot collide with an encoded value.
NEGATIVE_ENTRY = "\x00tiercache:negative"

# Log lines truncate keys to this many characters
LOG_KEY_MAX_LENGTH = 64
