"""
Parsing of model replies into structured data.

Model output is not guaranteed to be well-formed JSON. The parser tries an
ordered chain of strategies, each trading precision for recall:

1. direct  - parse the whole reply as JSON
2. block   - parse the first balanced {...} (or [...]) block
3. repair  - fix fences, trailing commas, quoting, then parse
4. regex   - collect "key": "value" pairs into candidate lists
5. lines   - collect key: value lines into candidate lists

Each strategy returns a dict/list or None. The first structured result wins.
"""

import json
import logging
import re
from typing import Any, Callable, Optional, Union

from ..errors import ParseError

logger = logging.getLogger(__name__)

Parsed = Union[dict, list]

# Candidate field names; never treated as property keys by the pattern strategies
CANDIDATE_FIELDS = {"value", "section", "sentence", "confidence", "source"}

REGEX_CONFIDENCE = 0.5
LINE_CONFIDENCE = 0.4

CODE_FENCE = re.compile(r"```(?:json|JSON)?\s*")
TRAILING_COMMA = re.compile(r",\s*([}\]])")
SINGLE_QUOTED = re.compile(r"(?<=[{\[,:])(\s*)'((?:[^'\\]|\\.)*)'")
BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_][\w\-]*)(\s*):")
PY_LITERALS = re.compile(r"(?<=[:\[,\s])(True|False|None)(?=\s*[,}\]])")
KEY_VALUE_PAIR = re.compile(r'"?(\w+)"?\s*:\s*"([^"]+)"')
KEY_VALUE_LINE = re.compile(r"^([^:]+):\s*(.+)$")

_PY_TO_JSON = {"True": "true", "False": "false", "None": "null"}


def _structured(value: Any) -> Optional[Parsed]:
    if isinstance(value, (dict, list)):
        return value
    return None


def _loads(text: str) -> Optional[Parsed]:
    try:
        return _structured(json.loads(text))
    except (json.JSONDecodeError, TypeError, ValueError):
        return None


def find_balanced_block(text: str) -> Optional[str]:
    """
    Return the first balanced JSON object or array in text.

    The block opens at whichever of ``{`` or ``[`` occurs first; braces inside
    string literals are ignored.
    """
    starts = [i for i in (text.find("{"), text.find("[")) if i >= 0]
    if not starts:
        return None
    start = min(starts)

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    return None


def _candidate(value: str, section: str, sentence: str, confidence: float) -> dict:
    return {
        "value": value,
        "section": section,
        "sentence": sentence,
        "confidence": confidence,
    }


class ResponseParser:
    """Turns raw model replies into dicts/lists via ordered repair strategies."""

    def __init__(self):
        self.strategies: list[tuple[str, Callable[[str], Optional[Parsed]]]] = [
            ("direct", self.parse_direct),
            ("block", self.parse_block),
            ("repair", self.parse_repaired),
            ("regex", self.parse_key_value_pairs),
            ("lines", self.parse_lines),
        ]

    def parse(self, raw_text: Optional[str]) -> Optional[Parsed]:
        """Parse a reply, returning None if every strategy misses."""
        return self.parse_with_strategy(raw_text)[0]

    def parse_with_strategy(self, raw_text: Optional[str]) -> tuple[Optional[Parsed], Optional[str]]:
        """
        Parse a reply and report which strategy succeeded.

        Returns:
            Tuple of (parsed value or None, strategy name or None)
        """
        if not raw_text or not isinstance(raw_text, str):
            return None, None

        for name, strategy in self.strategies:
            try:
                result = strategy(raw_text)
            except Exception as e:
                logger.debug(f"Parse strategy '{name}' raised {type(e).__name__}: {e}")
                continue
            if result is not None:
                if name != "direct":
                    logger.debug(f"Parsed model reply with '{name}' strategy")
                return result, name

        return None, None

    def parse_strict(self, raw_text: Optional[str]) -> Parsed:
        """Parse a reply, raising ParseError if every strategy misses."""
        result = self.parse(raw_text)
        if result is None:
            preview = (raw_text or "")[:200]
            raise ParseError("Could not parse structured data from model reply", raw_preview=preview)
        return result

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    def parse_direct(self, text: str) -> Optional[Parsed]:
        return _loads(text)

    def parse_block(self, text: str) -> Optional[Parsed]:
        block = find_balanced_block(text)
        if block is None:
            return None
        return _loads(block)

    def parse_repaired(self, text: str) -> Optional[Parsed]:
        repaired = self.repair(text)
        result = _loads(repaired)
        if result is None:
            block = find_balanced_block(repaired)
            if block is not None:
                result = _loads(block)
        return result

    def parse_key_value_pairs(self, text: str) -> Optional[Parsed]:
        result: dict[str, list] = {}
        for key, value in KEY_VALUE_PAIR.findall(text):
            if key.lower() in CANDIDATE_FIELDS:
                continue
            result.setdefault(key, []).append(
                _candidate(value, "unknown", value, REGEX_CONFIDENCE)
            )
        return result or None

    def parse_lines(self, text: str) -> Optional[Parsed]:
        result: dict[str, list] = {}
        for line in text.split("\n"):
            line = line.strip()
            if not line:
                continue
            match = KEY_VALUE_LINE.match(line)
            if not match:
                continue
            key = re.sub(r"[^a-zA-Z0-9_]", "_", match.group(1).strip())
            if key.strip("_").lower() in CANDIDATE_FIELDS:
                continue
            result.setdefault(key, []).append(
                _candidate(match.group(2).strip(), "extracted", line, LINE_CONFIDENCE)
            )
        return result or None

    # -------------------------------------------------------------------------
    # Repair
    # -------------------------------------------------------------------------

    def repair(self, text: str) -> str:
        """
        Apply syntax fixes for the most common malformed-JSON patterns.

        Fixes are applied outside double-quoted strings only, so evidence
        sentences containing quotes, colons or commas are left intact.
        """
        repaired = CODE_FENCE.sub("", text)
        repaired = re.sub(r"\s+", " ", repaired)
        repaired = _outside_strings(repaired, lambda s: SINGLE_QUOTED.sub(_double_quote, s))
        repaired = _outside_strings(repaired, _fix_structure)
        return repaired.strip()


DOUBLE_QUOTED = re.compile(r'("(?:[^"\\]|\\.)*")')


def _outside_strings(text: str, transform: Callable[[str], str]) -> str:
    parts = DOUBLE_QUOTED.split(text)
    # re.split with one capture group: odd indices are the quoted strings
    return "".join(part if i % 2 else transform(part) for i, part in enumerate(parts))


def _double_quote(match: re.Match) -> str:
    inner = match.group(2).replace("\\'", "'").replace('"', '\\"')
    return f'{match.group(1)}"{inner}"'


def _fix_structure(segment: str) -> str:
    segment = BARE_KEY.sub(r'\1"\2"\3:', segment)
    segment = PY_LITERALS.sub(lambda m: _PY_TO_JSON[m.group(1)], segment)
    return TRAILING_COMMA.sub(r"\1", segment)
