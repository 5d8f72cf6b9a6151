"""
Text cleaning and sentence segmentation for extraction.

Turns the raw section map supplied by the caller into processed Sections:
markup stripped, whitespace collapsed, content capped, and a bounded list
of sentences that serve as evidence candidates.
"""

import logging
import re
from typing import Mapping, Optional

from bs4 import BeautifulSoup

from ..config import ExtractionConfig
from .models import Section, SectionStats

logger = logging.getLogger(__name__)


# Sentence boundary: terminal punctuation, whitespace, then an uppercase letter
SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+(?=[A-Z])")

MARKUP_PATTERN = re.compile(r"<[^>]*>|&#?\w+;")

# Printable ASCII plus Latin-1 Supplement and Latin Extended-A/B
DISALLOWED_CHARS = re.compile(r"[^\x20-\x7E\u00A0-\u024F]")

WHITESPACE = re.compile(r"\s+")

HASH_PREFIX_CHARS = 100

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def rolling_hash(text: str) -> str:
    """
    32-bit polynomial rolling hash (h * 31 + c), rendered in base 36.

    Used for identity and conflict detection only, not for security.
    """
    h = 0
    for char in text:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    h = abs(h)

    if h == 0:
        return "0"
    digits = []
    while h:
        h, rem = divmod(h, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


class TextProcessor:
    """
    Cleans raw section text and splits it into evidence sentences.

    Pure function of its input and configuration.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None):
        self.config = config or ExtractionConfig()

    def clean(self, text: Optional[str]) -> str:
        """Strip markup, drop disallowed characters and collapse whitespace."""
        if not text:
            return ""

        if MARKUP_PATTERN.search(text):
            text = BeautifulSoup(text, "html.parser").get_text(" ")

        text = WHITESPACE.sub(" ", text)
        text = DISALLOWED_CHARS.sub("", text)
        return WHITESPACE.sub(" ", text).strip()

    def extract_sentences(self, text: Optional[str]) -> list[str]:
        """
        Split text into sentences within the configured length bounds.

        Sentences without any alphabetic character are dropped.
        """
        if not text:
            return []

        cleaned = self.clean(text)
        sentences = []
        for sentence in SENTENCE_BOUNDARY.split(cleaned):
            sentence = sentence.strip()
            if not (self.config.min_sentence_length <= len(sentence) <= self.config.max_sentence_length):
                continue
            if not re.search(r"[a-zA-Z]", sentence):
                continue
            sentences.append(sentence)

        return sentences

    def process_sections(self, sections: Mapping[str, str]) -> dict[str, Section]:
        """
        Clean, cap and segment every section.

        Sections whose content is empty or not a string are skipped.

        Args:
            sections: Mapping of section name to raw text

        Returns:
            Mapping of section name to processed Section, in input order
        """
        processed = {}

        for name, content in sections.items():
            if not content or not isinstance(content, str):
                logger.debug(f"Skipping empty or non-text section: {name}")
                continue

            processed_content = self.clean(content)
            if len(processed_content) > self.config.max_section_size:
                processed_content = processed_content[:self.config.max_section_size] + "..."

            sentences = self.extract_sentences(processed_content)
            sentences = sentences[:self.config.max_sentences_per_section]

            processed[name] = Section(
                name=name,
                content=processed_content,
                sentences=tuple(sentences),
                hash=rolling_hash(processed_content[:HASH_PREFIX_CHARS]),
                stats=SectionStats(
                    original_length=len(content),
                    processed_length=len(processed_content),
                    sentence_count=len(sentences),
                ),
            )

        return processed

    def log_section_coverage(self, sections: Mapping[str, Section]) -> None:
        """Log hash, sentence count and lengths for each processed section."""
        logger.info("=== Section Coverage ===")
        for name, section in sections.items():
            logger.info(
                f"{name}: hash={section.hash} sentences={section.stats.sentence_count} "
                f"original={section.stats.original_length} chars "
                f"processed={section.stats.processed_length} chars"
            )
