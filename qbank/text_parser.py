"""
Text Parser
===========
Turns LLM-generated question text into validated Question records.

Input layout, one block per question:

    Question text ∆∆∆∆∆ $Correct option
    €Wrong option
    ¥Another wrong option §§§§ Explanation ^^^^^

Malformed pairs and option lines are dropped silently; only a parse that
yields nothing at all is reported as an error.
"""

from __future__ import annotations

import logging
import random
import re
import time
from typing import Callable, Optional, TypeVar

from .models import Option, ParseError, ParseErrorType, ParseResult, Question

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ─── Format Delimiters ────────────────────────────────────────────────────────

QUESTION_SEPARATOR = "∆∆∆∆∆"
OPTIONS_SEPARATOR = "§§§§"
EXPLANATION_DELIMITER = "^^^^^"

CORRECT_SYMBOL = "$"
INCORRECT_SYMBOLS = ("€", "¥", "¢")
OPTION_SYMBOLS = (CORRECT_SYMBOL,) + INCORRECT_SYMBOLS
ESCAPE_MARKER = "\\"

# A backslash before any punctuation/symbol character (not a word character,
# not whitespace). Word characters are ASCII-only to match the generator.
ESCAPED_PUNCTUATION = re.compile(r"\\([^\sA-Za-z0-9_])")

FORMAT_EXAMPLE = (
    f"Question Text {QUESTION_SEPARATOR} {CORRECT_SYMBOL}Correct Option\n"
    f"{INCORRECT_SYMBOLS[0]}Incorrect Option {OPTIONS_SEPARATOR} "
    f"Explanation {EXPLANATION_DELIMITER}"
)

EMPTY_INPUT_MESSAGE = "Input text is empty."
MALFORMED_MESSAGE = (
    "Invalid format. The text should contain pairs of sections "
    f"separated by '{QUESTION_SEPARATOR}'."
)
NO_VALID_MESSAGE = (
    "Parsing failed. Please check your format. Example: " + FORMAT_EXAMPLE
)


# ─── Helpers ──────────────────────────────────────────────────────────────────


def unescape_punctuation(text: str) -> str:
    """Collapse `\\x` to `x` for every non-alphanumeric, non-space `x`."""
    return ESCAPED_PUNCTUATION.sub(r"\1", text)


def shuffled(items: list[T], rng: random.Random) -> list[T]:
    """Return a uniformly shuffled copy (Fisher-Yates); `items` is untouched."""
    result = list(items)
    rng.shuffle(result)
    return result


def split_option_line(line: str) -> Optional[tuple[str, str]]:
    """
    Split a trimmed option line into (symbol, text).

    Accepts a bare symbol (`$text`) or one escaped with a single marker
    (`\\$text`). Returns None if the line carries no recognized symbol or
    no text.
    """
    if (
        len(line) >= 2
        and line[0] == ESCAPE_MARKER
        and line[1] in OPTION_SYMBOLS
    ):
        symbol, text = line[1], line[2:].strip()
    elif line[:1] in OPTION_SYMBOLS:
        symbol, text = line[0], line[1:].strip()
    else:
        return None

    if not text:
        return None
    return symbol, text


def _non_blank(parts: list[str]) -> list[str]:
    return [p for p in parts if p.strip()]


# ─── Parser ───────────────────────────────────────────────────────────────────


class QuestionParser:
    """
    Parser for the delimiter format.

    `rng` drives option shuffling and id entropy; `id_factory` may replace
    id generation entirely (it receives the pair index).
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        id_factory: Optional[Callable[[int], str]] = None,
    ):
        self.rng = rng or random.Random()
        self.id_factory = id_factory or self._default_id

    def _default_id(self, index: int) -> str:
        return f"q_{time.time_ns()}_{self.rng.getrandbits(48):012x}_{index}"

    def parse(self, raw_text: str) -> ParseResult:
        """Parse raw text into questions, or a single error."""
        text = unescape_punctuation(raw_text)

        if not text.strip():
            return self._fail(ParseErrorType.EMPTY_INPUT, EMPTY_INPUT_MESSAGE)

        parts = _non_blank(text.split(QUESTION_SEPARATOR))
        if not parts or len(parts) % 2 != 0:
            return self._fail(
                ParseErrorType.MALFORMED_STRUCTURE, MALFORMED_MESSAGE
            )

        questions: list[Question] = []
        pair_count = len(parts) // 2

        for i in range(0, len(parts), 2):
            question = self._parse_pair(parts[i], parts[i + 1], i)
            if question is not None:
                questions.append(question)

        skipped = pair_count - len(questions)

        if not questions:
            logger.info(f"No valid questions in {pair_count} pair(s)")
            return self._fail(
                ParseErrorType.NO_VALID_QUESTIONS,
                NO_VALID_MESSAGE,
                pairs_detected=pair_count,
                pairs_skipped=skipped,
            )

        logger.info(
            f"Parsed {len(questions)} question(s) from {pair_count} pair(s), "
            f"{skipped} skipped"
        )
        return ParseResult(
            questions=questions,
            pairs_detected=pair_count,
            pairs_skipped=skipped,
        )

    def _parse_pair(
        self, question_part: str, content_block: str, index: int
    ) -> Optional[Question]:
        """Build one question from a pair, or None if the pair is unusable."""
        content_parts = _non_blank(content_block.split(OPTIONS_SEPARATOR))
        if len(content_parts) != 2:
            logger.debug(
                f"Pair {index // 2}: expected 2 sections around "
                f"'{OPTIONS_SEPARATOR}', got {len(content_parts)}"
            )
            return None

        options_part, explanation_container = content_parts
        explanation_parts = _non_blank(
            explanation_container.split(EXPLANATION_DELIMITER)
        )
        if len(explanation_parts) != 1:
            logger.debug(
                f"Pair {index // 2}: expected 1 explanation, "
                f"got {len(explanation_parts)}"
            )
            return None

        question_text = question_part.strip()
        explanation = explanation_parts[0].strip()
        lines = [
            line for line in options_part.strip().split("\n")
            if line.strip()
        ]

        if not question_text or not explanation or not lines:
            logger.debug(f"Pair {index // 2}: empty question, explanation or options")
            return None

        options = self._parse_options(lines)

        if len(options) < 2 or not any(o.is_correct for o in options):
            logger.debug(
                f"Pair {index // 2}: {len(options)} usable option(s), "
                "need 2+ with one correct"
            )
            return None

        return Question(
            id=self.id_factory(index),
            question_text=question_text,
            options=tuple(shuffled(options, self.rng)),
            explanation=explanation,
            has_been_practiced=False,
        )

    def _parse_options(self, lines: list[str]) -> list[Option]:
        seen_symbols: set[str] = set()
        options: list[Option] = []

        for line in lines:
            split = split_option_line(line.strip())
            if split is None:
                continue

            symbol, text = split
            if symbol in seen_symbols:
                logger.debug(f"Dropping option with repeated symbol {symbol!r}")
                continue
            seen_symbols.add(symbol)

            options.append(
                Option(text=text, is_correct=symbol == CORRECT_SYMBOL)
            )

        return options

    def _fail(
        self, error_type: ParseErrorType, message: str, **counts
    ) -> ParseResult:
        return ParseResult(
            error=ParseError(type=error_type, message=message), **counts
        )


def parse_questions(
    raw_text: str,
    rng: Optional[random.Random] = None,
    id_factory: Optional[Callable[[int], str]] = None,
) -> ParseResult:
    """Parse raw generated text. See `QuestionParser`."""
    return QuestionParser(rng=rng, id_factory=id_factory).parse(raw_text)
