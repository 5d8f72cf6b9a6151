"""
Evidence sentence pool.

Tracks which sentences have already been claimed as evidence during one
extraction run, so a sentence supports at most one property.
"""

import logging
from collections import Counter
from typing import Optional

from .text_processor import WHITESPACE, rolling_hash

logger = logging.getLogger(__name__)


class SentencePool:
    """
    Maps normalized sentence hashes to the property that claimed them.

    Owned by one orchestrator and cleared at the start of every run.
    """

    def __init__(self):
        self._owners: dict[str, str] = {}  # hash -> property id

    @staticmethod
    def hash(sentence: str) -> str:
        """Case-insensitive, whitespace-normalized sentence hash."""
        normalized = WHITESPACE.sub(" ", (sentence or "").lower()).strip()
        return f"s_{rolling_hash(normalized)}"

    def is_available(self, sentence: str) -> bool:
        return self.hash(sentence) not in self._owners

    def owner(self, sentence: str) -> Optional[str]:
        """Property id that claimed the sentence, if any."""
        return self._owners.get(self.hash(sentence))

    def mark_used(self, sentence: str, property_id: str) -> str:
        """Claim a sentence for a property and return its hash."""
        sentence_hash = self.hash(sentence)
        self._owners[sentence_hash] = property_id
        return sentence_hash

    def stats(self) -> dict:
        return {
            "total_used": len(self._owners),
            "by_property": dict(Counter(self._owners.values())),
        }

    def clear(self) -> None:
        self._owners.clear()

    def __len__(self) -> int:
        return len(self._owners)
