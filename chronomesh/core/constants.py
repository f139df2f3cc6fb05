"""
System-Wide Constants for the Time-Indexed Record Mesh

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# SIZE AND TIME UNITS
# =============================================================================
KB: Final[int] = 1024
MB: Final[int] = 1024 * KB

SECOND_MS: Final[int] = 1000
HOUR_MICROS: Final[int] = 3600 * 1_000_000
DAY_MICROS: Final[int] = 24 * HOUR_MICROS

# =============================================================================
# TIME BUCKETS
# =============================================================================
HOURS_PER_DAY: Final[int] = 24
FIRST_HOUR: Final[int] = 0
LAST_HOUR: Final[int] = HOURS_PER_DAY - 1

# Path components are joined with this separator: "<base>.<day>.<hour>"
KEY_SEPARATOR: Final[str] = "."
DAY_COMPONENT_FORMAT: Final[str] = "{year:04d}-{month:02d}-{day:02d}"
HOUR_COMPONENT_FORMAT: Final[str] = "{hour:02d}"

DEFAULT_BASE_COMPONENT: Final[str] = "create"

# =============================================================================
# IDENTITIES
# =============================================================================
IDENTITY_DIGEST_BYTES: Final[int] = 32  # SHA-256
IDENTITY_TEXT_PREFIX: Final[str] = "u"

# =============================================================================
# STORAGE
# =============================================================================
COMPRESSION_THRESHOLD_BYTES: Final[int] = 1 * KB
REDIS_KEY_PREFIX: Final[str] = "chronomesh"
