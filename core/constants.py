"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Defines system-wide constants and key builders.

- Statistic sections and granularities
- Time-series and blob key layouts
- Archive shape requirements

============================================================
DESIGN PRINCIPLES
============================================================
- All constants are immutable
- Key formats live here and nowhere else
- No business logic here

============================================================
"""

from typing import Tuple


# ============================================================
# SYSTEM CONSTANTS
# ============================================================

SYSTEM_NAME = "social-archive-pipeline"

ARCHIVE_TYPE_FACEBOOK = "facebook"
EXPORT_ARCHIVE_TYPE = "spring"


# ============================================================
# STATISTICS
# ============================================================

SECTION_POST = "post"
SECTION_REACTION = "reaction"
SECTION_SENTIMENT = "sentiment"

SECTIONS: Tuple[str, ...] = (SECTION_POST, SECTION_REACTION, SECTION_SENTIMENT)

PERIOD_WEEK = "week"
PERIOD_YEAR = "year"
PERIOD_DECADE = "decade"

GRANULARITIES: Tuple[str, ...] = (PERIOD_WEEK, PERIOD_YEAR, PERIOD_DECADE)

# Sub-period bucket used inside each granularity
SUB_PERIODS = {
    PERIOD_WEEK: "day",
    PERIOD_YEAR: "month",
    PERIOD_DECADE: "year",
}

# Hard limit of a single time-series batch write
MAX_BATCH_SIZE = 25


# ============================================================
# ARCHIVE SHAPE
# ============================================================

REQUIRED_ARCHIVE_DIRECTORIES: Tuple[str, ...] = (
    "photos_and_videos/",
    "posts/",
    "friends/",
)


# ============================================================
# KEY BUILDERS
# ============================================================

def stat_key(account_number: str, section: str, period: str) -> str:
    """Time-series key of a UsageStat series."""
    return f"{account_number}/{section}-{period}-stat"


def raw_record_key(account_number: str, section: str) -> str:
    """Time-series key of derived raw records (posts or reactions)."""
    return f"{account_number}/{section}"


def archive_blob_key(
    account_number: str,
    archive_type: str,
    archive_id: int,
    filename: str,
) -> str:
    """Blob key of an uploaded archive."""
    return f"{account_number}/{archive_type}/archives/{archive_id}/{filename}"


def archive_data_prefix(account_number: str, archive_type: str, archive_id: int) -> str:
    """Blob prefix of media and files extracted from an archive."""
    return f"{account_number}/{archive_type}/archives/{archive_id}/data"


def export_blob_key(account_number: str, export_id: str) -> str:
    """Blob key of a prepared data export."""
    return f"{account_number}/{EXPORT_ARCHIVE_TYPE}/archives/archive-{export_id}.zip"


def account_prefix(account_number: str) -> str:
    """Blob prefix owning everything stored for an account."""
    return f"{account_number}/"


def all_account_keys(account_number: str) -> Tuple[str, ...]:
    """Every time-series key an account may own."""
    keys = [
        stat_key(account_number, section, period)
        for section in SECTIONS
        for period in GRANULARITIES
    ]
    keys.append(raw_record_key(account_number, SECTION_POST))
    keys.append(raw_record_key(account_number, SECTION_REACTION))
    return tuple(keys)
