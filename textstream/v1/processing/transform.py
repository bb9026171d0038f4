"""
Character-frequency + Base64 text transform.

The formatted result is the histogram of the input's code points, sorted by
code point and rendered as ``<char><count>`` pairs, followed by ``/`` and the
standard Base64 encoding of the input's UTF-8 bytes::

    "Hello, World!" -> " 1!1,1H1W1d1e1l3o2r1/SGVsbG8sIFdvcmxkIQ=="

``TextProcessor.stream_transform`` emits the formatted result one character at
a time with an artificial, cancellable per-character delay.
"""

import asyncio
import base64
import random
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from textstream.config.logging import get_logger
from textstream.v1.core.exceptions import InvalidArgumentError
from textstream.v1.infra.jobs.models import CancellationToken

logger = get_logger(__name__)

SEPARATOR = "/"

UnitCallback = Callable[[str, int, int], Awaitable[None]]


@dataclass(frozen=True)
class CharacterCount:
    """A character and the number of times it occurs in the input."""

    character: str
    count: int

    def __str__(self) -> str:
        return f"{self.character}{self.count}"


@dataclass(frozen=True)
class ProcessingResult:
    """Result of the text transform."""

    character_counts: list[CharacterCount] = field(default_factory=list)
    base64_encoded: str = ""
    formatted_result: str = ""


def analyze_character_frequency(text: str) -> list[CharacterCount]:
    """Count code points and sort them ascending by code point value."""
    if not text:
        return []

    counts = Counter(text)
    return [
        CharacterCount(character, counts[character])
        for character in sorted(counts, key=ord)
    ]


def encode_to_base64(text: str) -> str:
    """Standard Base64 of the UTF-8 bytes of ``text``; empty input gives ''."""
    if not text:
        return ""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def build_formatted_result(
    character_counts: list[CharacterCount], base64_encoded: str
) -> str:
    histogram = "".join(str(pair) for pair in character_counts)
    return f"{histogram}{SEPARATOR}{base64_encoded}"


def estimate_output_length(text: str) -> int:
    """
    Length of the formatted result for ``text``, computed without building it.

    Histogram length (each character plus the decimal digits of its count),
    plus the separator, plus the padded Base64 length of the UTF-8 bytes.
    """
    counts = Counter(text)
    histogram_length = sum(
        len(character) + len(str(count)) for character, count in counts.items()
    )
    utf8_length = len(text.encode("utf-8"))
    base64_length = ((utf8_length + 2) // 3) * 4
    return histogram_length + len(SEPARATOR) + base64_length


def transform(text: str | None) -> ProcessingResult:
    """
    Compute the character histogram and Base64 encoding of ``text``.

    Raises:
        InvalidArgumentError: if ``text`` is empty or ``None``.
    """
    if not text:
        raise InvalidArgumentError("Input text cannot be null or empty")

    character_counts = analyze_character_frequency(text)
    base64_encoded = encode_to_base64(text)

    logger.debug(
        "Transformed text",
        unique_characters=len(character_counts),
        base64_length=len(base64_encoded),
    )

    return ProcessingResult(
        character_counts=character_counts,
        base64_encoded=base64_encoded,
        formatted_result=build_formatted_result(character_counts, base64_encoded),
    )


class TextProcessor:
    """Streams the transform output one character at a time."""

    def __init__(
        self,
        min_delay_ms: int = 1000,
        max_delay_ms: int = 5000,
        rng: random.Random | None = None,
    ):
        if min_delay_ms < 0 or max_delay_ms < min_delay_ms:
            raise ValueError(
                f"Invalid unit delay range: {min_delay_ms}-{max_delay_ms} ms"
            )
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self._rng = rng or random.Random()

    def next_delay(self) -> float:
        """Random per-character delay in seconds."""
        return self._rng.randint(self.min_delay_ms, self.max_delay_ms) / 1000

    async def stream_transform(
        self,
        text: str,
        on_unit_processed: UnitCallback,
        cancel_token: CancellationToken,
    ) -> ProcessingResult:
        """
        Compute the transform eagerly, then emit its formatted result.

        ``on_unit_processed(character, position, total)`` is awaited once per
        character, in order. The token is checked before every delay and
        before every callback.

        Raises:
            InvalidArgumentError: if ``text`` is empty.
            OperationCancelledError: once ``cancel_token`` is triggered.
        """
        result = transform(text)
        output = result.formatted_result
        total = len(output)

        logger.info("Streaming transform started", total_units=total)

        for position, character in enumerate(output):
            cancel_token.raise_if_cancelled()

            delay = self.next_delay()
            if delay > 0:
                # Returns early when cancelled so the next check fires at once
                await cancel_token.wait(timeout=delay)
            else:
                await asyncio.sleep(0)

            cancel_token.raise_if_cancelled()
            await on_unit_processed(character, position, total)

        logger.info("Streaming transform finished", total_units=total)
        return result
