"""Phase 2: version strings.

Messages carry no change detection: every document gets the same
version, so every crawl reprocesses everything it seeds.
"""

from __future__ import annotations

from collections.abc import Sequence

EMAIL_VERSION = "1.0"


def get_document_versions(identifiers: Sequence[str]) -> list[str]:
    """One constant version per identifier; an empty input gives an empty list."""
    return [EMAIL_VERSION] * len(identifiers)
