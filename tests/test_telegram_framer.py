"""
Tests for the regex telegram framer and its frame buffer.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from serial_ingestor.adapters.telegram_framer import (
    FrameBuffer,
    RegexTelegramFramer,
    create_telegram_framer,
)
from serial_ingestor.domain.ports import FramingConfigError


WEATHER_TELEGRAM = b"ZCZC TMQ2627 151600\nFF ZBTJZXZX\nNNNN"


@pytest.fixture
def framer():
    return RegexTelegramFramer(start_marker="ZCZC", end_marker="NNNN")


def _feed(framer, stream: bytes, chunk_size: int):
    telegrams = []
    for i in range(0, len(stream), chunk_size):
        telegrams.extend(framer.append(stream[i:i + chunk_size]))
    return telegrams


class TestFrameBuffer:

    def test_append_and_snapshot(self):
        buffer = FrameBuffer()
        buffer.append(b"ZCZC ")
        buffer.append(b"TMQ")

        assert buffer.snapshot() == b"ZCZC TMQ"
        assert buffer.snapshot(5) == b"TMQ"
        assert len(buffer) == 8

    def test_consume_drops_prefix(self):
        buffer = FrameBuffer()
        buffer.append(b"NNNNtail")
        buffer.consume(4)

        assert buffer.snapshot() == b"tail"

    def test_clear(self):
        buffer = FrameBuffer()
        buffer.append(b"partial")
        buffer.clear()

        assert buffer.snapshot() == b""
        assert len(buffer) == 0


def test_single_telegram_is_extracted_whole(framer):
    telegrams = framer.append(WEATHER_TELEGRAM)

    assert telegrams == [WEATHER_TELEGRAM]
    assert framer.pending == b""


def test_two_telegrams_separated_by_blank_line(framer):
    first = b"ZCZC TMQ0001 010000\nFIRST\nNNNN"
    second = b"ZCZC TMQ0002 010100\nSECOND\nNNNN"

    telegrams = framer.append(first + b"\n\n" + second)

    assert telegrams == [first, second]


def test_missing_end_marker_keeps_partial(framer):
    partial = b"ZCZC TMQ2627 151600\nFF ZBTJ"

    assert framer.append(partial) == []
    assert framer.pending == partial


def test_telegram_split_across_chunks(framer):
    assert framer.append(b"ZCZC TMQ2627 1516") == []
    assert framer.append(b"00\nFF ZBTJZXZX\nNN") == []
    assert framer.append(b"NN") == [WEATHER_TELEGRAM]
    assert framer.pending == b""


def test_tail_after_last_end_marker_is_retained(framer):
    telegrams = framer.append(b"ZCZC A\nNNNN\nZCZC B\npart")

    assert telegrams == [b"ZCZC A\nNNNN"]
    assert framer.pending == b"\nZCZC B\npart"

    assert framer.append(b"ial\nNNNN") == [b"ZCZC B\npartial\nNNNN"]


def test_noise_before_start_marker_is_not_part_of_telegram(framer):
    assert framer.append(b"line noise ZCZC A\nNNNN") == [b"ZCZC A\nNNNN"]


def test_end_marker_without_start_yields_nothing(framer):
    assert framer.append(b"garbage NNNN junk") == []
    assert framer.pending == b" junk"

    assert framer.append(b" ZCZC C\nNNNN") == [b"ZCZC C\nNNNN"]


def test_shortest_span_wins(framer):
    telegrams = framer.append(b"ZCZC A\nNNNN trailer NNNN")

    assert telegrams == [b"ZCZC A\nNNNN"]
    assert framer.pending == b""


@pytest.mark.parametrize("chunk_size", [1, 2, 3, 7, 16, 64])
def test_chunking_does_not_change_output(chunk_size):
    stream = (
        b"noise\r\n"
        + WEATHER_TELEGRAM
        + b"\r\n\r\nZCZC TMQ2628 151700\nSECOND BODY\nNNNN"
        + b"\x00\x01 ZCZC TMQ2629 151800\nTHIRD\nNNNN\r\nZCZC TMQ2630 unfinished"
    )

    whole = RegexTelegramFramer()
    expected = whole.append(stream)

    chunked = RegexTelegramFramer()
    assert _feed(chunked, stream, chunk_size) == expected
    assert chunked.pending == whole.pending
    assert len(expected) == 3


def test_telegrams_are_returned_in_stream_order(framer):
    stream = b"".join(
        b"ZCZC TMQ%04d\nBODY\nNNNN\n" % number for number in range(20)
    )

    telegrams = _feed(framer, stream, 5)

    assert telegrams == [
        b"ZCZC TMQ%04d\nBODY\nNNNN" % number for number in range(20)
    ]


def test_custom_regex_markers():
    framer = RegexTelegramFramer(start_marker=r"\x01", end_marker=r"\x03")

    assert framer.append(b"xx\x01payload\x03\x01next") == [b"\x01payload\x03"]
    assert framer.pending == b"\x01next"


class TestOverflow:

    def test_unterminated_tail_over_cap_is_discarded(self, caplog):
        framer = RegexTelegramFramer(max_buffer_size=16)

        with caplog.at_level(logging.WARNING):
            assert framer.append(b"ZCZC " + b"x" * 12) == []

        assert framer.pending == b""
        assert framer.discards == 1
        assert any(
            record.levelno == logging.WARNING and "discarding" in record.getMessage()
            for record in caplog.records
        )

    def test_bytes_after_the_overflowing_byte_are_kept(self):
        framer = RegexTelegramFramer(max_buffer_size=16)

        framer.append(b"ZCZC " + b"x" * 20)

        assert framer.discards == 1
        assert framer.pending == b"x" * 8

    def test_framing_recovers_after_discard(self):
        framer = RegexTelegramFramer(max_buffer_size=16)
        framer.append(b"ZCZC " + b"x" * 12)

        assert framer.append(b"ZCZC B\nNNNN") == [b"ZCZC B\nNNNN"]
        assert framer.discards == 1

    def test_telegram_longer_than_cap_is_discarded(self):
        framer = RegexTelegramFramer(max_buffer_size=16)

        assert framer.append(b"ZCZC " + b"y" * 40 + b"\nNNNN") == []
        assert framer.discards >= 1

    def test_tail_at_cap_is_kept(self):
        framer = RegexTelegramFramer(max_buffer_size=16)

        framer.append(b"ZCZC 67890123456")

        assert len(framer.pending) == 16
        assert framer.discards == 0

    @pytest.mark.parametrize(
        "stream",
        [
            b"ZCZC " + b"y" * 40 + b"\nNNNN",
            b"ZCZC " + b"x" * 40 + b" ZCZC B\nNNNN",
            b"ZCZC A\nNNNN" + b"z" * 30 + b"ZCZC B\nNNNN",
        ],
    )
    @pytest.mark.parametrize("chunk_size", [1, 7, None])
    def test_overflow_does_not_depend_on_chunking(self, stream, chunk_size):
        bytewise = RegexTelegramFramer(max_buffer_size=16)
        expected = _feed(bytewise, stream, 1)

        framer = RegexTelegramFramer(max_buffer_size=16)
        telegrams = _feed(framer, stream, chunk_size or len(stream))

        assert telegrams == expected
        assert framer.discards == bytewise.discards
        assert framer.pending == bytewise.pending

    def test_oversized_streams_yield_nothing(self):
        framer = RegexTelegramFramer(max_buffer_size=16)

        assert framer.append(b"ZCZC " + b"y" * 40 + b"\nNNNN") == []
        assert framer.append(b"ZCZC " + b"x" * 40 + b" ZCZC B\nNNNN") == []


class TestEndMarkerScan:

    def test_literal_marker_split_over_many_chunks(self):
        framer = RegexTelegramFramer(max_buffer_size=1024)
        stream = b"ZCZC " + b"a" * 300 + b"\nNNNN" + b"ZCZC B\nNNNN"

        telegrams = _feed(framer, stream, 2)

        assert telegrams == [
            b"ZCZC " + b"a" * 300 + b"\nNNNN",
            b"ZCZC B\nNNNN",
        ]
        assert framer.pending == b""

    def test_pattern_marker_is_rescanned(self):
        framer = RegexTelegramFramer(end_marker=r"N{4}", max_buffer_size=1024)
        stream = b"ZCZC " + b"a" * 50 + b"\nNNNN"

        assert _feed(framer, stream, 3) == [stream]

    def test_marker_straddling_a_reset_is_not_matched(self):
        framer = RegexTelegramFramer()
        framer.append(b"ZCZC A\nNN")
        framer.reset()

        assert framer.append(b"NN") == []
        assert framer.append(b"ZCZC B\nNNNN") == [b"ZCZC B\nNNNN"]

def test_reset_returns_dropped_byte_count(framer):
    framer.append(b"ZCZC partial")

    assert framer.reset() == 12
    assert framer.pending == b""
    assert framer.reset() == 0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"start_marker": "("},
        {"end_marker": "[unclosed"},
        {"start_marker": ""},
        {"end_marker": ""},
        {"max_buffer_size": 0},
    ],
)
def test_invalid_configuration_is_rejected(kwargs):
    with pytest.raises(FramingConfigError):
        RegexTelegramFramer(**kwargs)


def test_framing_config_error_is_value_error():
    with pytest.raises(ValueError):
        create_telegram_framer(start_marker="(")


def test_concurrent_appends_do_not_lose_telegrams():
    framer = create_telegram_framer()
    telegram = b"ZCZC TMQ0001\nBODY\nNNNN"

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: framer.append(telegram), range(200)))

    assert sum(len(batch) for batch in results) == 200
    assert framer.pending == b""
