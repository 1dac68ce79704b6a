from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class StorageClass(str, Enum):
    """Storage tiers the facade knows how to request."""

    STANDARD = "STANDARD"
    REDUCED_REDUNDANCY = "REDUCED_REDUNDANCY"
    STANDARD_IA = "STANDARD_IA"

    @classmethod
    def parse(cls, value: str | None) -> "StorageClass":
        """Map a settings value to a tier; unknown values mean STANDARD."""
        if not value:
            return cls.STANDARD
        normalized = value.strip().upper()
        try:
            return cls(normalized)
        except ValueError:
            logger.warning("unknown_storage_class value=%s fallback=STANDARD", value)
            return cls.STANDARD
