import asyncio
import random
import time

import pytest

from textstream.v1.core.exceptions import (
    InvalidArgumentError,
    OperationCancelledError,
)
from textstream.v1.infra.jobs.models import CancellationToken
from textstream.v1.processing.transform import (
    CharacterCount,
    TextProcessor,
    analyze_character_frequency,
    encode_to_base64,
    estimate_output_length,
    transform,
)


class TestTransform:
    """Test the character histogram and Base64 transform."""

    def test_hello_world(self):
        result = transform("Hello, World!")

        assert result.formatted_result == " 1!1,1H1W1d1e1l3o2r1/SGVsbG8sIFdvcmxkIQ=="
        assert result.base64_encoded == "SGVsbG8sIFdvcmxkIQ=="
        assert CharacterCount("l", 3) in result.character_counts

    def test_histogram_sorted_by_code_point(self):
        counts = analyze_character_frequency("cbaCBA")

        assert [pair.character for pair in counts] == ["A", "B", "C", "a", "b", "c"]
        assert all(pair.count == 1 for pair in counts)

    def test_multi_digit_counts(self):
        assert transform("a" * 12).formatted_result == "a12/YWFhYWFhYWFhYWFh"

    def test_non_ascii_uses_utf8_bytes(self):
        assert transform("é").formatted_result == "é1/w6k="
        assert transform("😀").formatted_result == "😀1/8J+YgA=="

    def test_whitespace_only_text_is_transformed(self):
        assert transform("  ").formatted_result == " 2/ICA="

    @pytest.mark.parametrize("text", ["", None])
    def test_empty_input_rejected(self, text):
        with pytest.raises(InvalidArgumentError, match="cannot be null or empty"):
            transform(text)

    def test_encode_empty_string(self):
        assert encode_to_base64("") == ""

    @pytest.mark.parametrize(
        "text", ["Hi", "Hello, World!", "a" * 12, "é😀 mixed ünïcode", "x" * 1000]
    )
    def test_estimated_length_matches_output(self, text):
        assert estimate_output_length(text) == len(transform(text).formatted_result)


class TestTextProcessor:
    """Test streaming output with cancellable delays."""

    def test_invalid_delay_range(self):
        with pytest.raises(ValueError):
            TextProcessor(min_delay_ms=10, max_delay_ms=5)

    def test_delay_within_bounds(self):
        processor = TextProcessor(
            min_delay_ms=1000, max_delay_ms=5000, rng=random.Random(42)
        )
        delays = [processor.next_delay() for _ in range(50)]
        assert all(1.0 <= delay <= 5.0 for delay in delays)

    @pytest.mark.asyncio
    async def test_emits_every_character_in_order(self):
        processor = TextProcessor(min_delay_ms=0, max_delay_ms=0)
        emitted = []

        async def on_unit(character, position, total):
            emitted.append((character, position, total))

        result = await processor.stream_transform("Hi", on_unit, CancellationToken())

        assert "".join(c for c, _, _ in emitted) == "H1i1/SGk="
        assert [p for _, p, _ in emitted] == list(range(9))
        assert {t for _, _, t in emitted} == {9}
        assert result.formatted_result == "H1i1/SGk="

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_before_first_unit(self):
        processor = TextProcessor(min_delay_ms=0, max_delay_ms=0)
        token = CancellationToken()
        token.cancel()
        emitted = []

        async def on_unit(character, position, total):
            emitted.append(character)

        with pytest.raises(OperationCancelledError):
            await processor.stream_transform("Hi", on_unit, token)
        assert emitted == []

    @pytest.mark.asyncio
    async def test_cancel_interrupts_delay(self):
        processor = TextProcessor(min_delay_ms=5000, max_delay_ms=5000)
        token = CancellationToken()

        async def on_unit(character, position, total):
            pass

        async def cancel_soon():
            await asyncio.sleep(0.05)
            token.cancel()

        started = time.monotonic()
        asyncio.create_task(cancel_soon())
        with pytest.raises(OperationCancelledError):
            await processor.stream_transform("Hi", on_unit, token)

        assert time.monotonic() - started < 1.0

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self):
        processor = TextProcessor(min_delay_ms=0, max_delay_ms=0)

        async def on_unit(character, position, total):
            pass

        with pytest.raises(InvalidArgumentError):
            await processor.stream_transform("", on_unit, CancellationToken())


class TestCancellationToken:
    """Test cooperative cancellation semantics."""

    def test_cancel_is_idempotent(self):
        token = CancellationToken()

        assert token.cancel() is True
        assert token.cancel() is False
        assert token.is_cancelled

    def test_cancel_after_dispose_is_noop(self):
        token = CancellationToken()
        token.dispose()

        assert token.cancel() is False
        assert not token.is_cancelled
        assert token.is_disposed

    @pytest.mark.asyncio
    async def test_wait_times_out_when_not_cancelled(self):
        token = CancellationToken()
        assert await token.wait(timeout=0.01) is False
