"""
Tests for sequence identifier extraction.
"""

import pytest

from serial_ingestor.adapters.sequence_extractor import (
    RegexSequenceExtractor,
    SEQUENCE_UNKNOWN,
)
from serial_ingestor.domain.ports import FramingConfigError


@pytest.fixture
def extractor():
    return RegexSequenceExtractor()


def test_extracts_token_after_start_marker(extractor):
    telegram = b"ZCZC TMQ2627 151600\nFF ZBTJZXZX\nNNNN"

    assert extractor.extract(telegram) == "TMQ2627"


def test_missing_token_returns_sentinel(extractor):
    assert extractor.extract(b"ZCZC\nNNNN") == SEQUENCE_UNKNOWN
    assert SEQUENCE_UNKNOWN == "TMQ----"


def test_any_whitespace_delimits_the_token(extractor):
    assert extractor.extract(b"ZCZC\nno header\nNNNN") == "no"
    assert extractor.extract(b"ZCZC-NOHEADER\nNNNN") == SEQUENCE_UNKNOWN


def test_text_input_is_accepted(extractor):
    assert extractor.extract("ZCZC ABC123 010000\nNNNN") == "ABC123"


@pytest.mark.parametrize("telegram", [None, 42, b"", b"\xff\xfe\x00"])
def test_malformed_input_never_raises(extractor, telegram):
    assert extractor.extract(telegram) == SEQUENCE_UNKNOWN


def test_pattern_without_group_uses_whole_match():
    extractor = RegexSequenceExtractor(pattern=r"TMQ\d+")

    assert extractor.extract(b"ZCZC TMQ2627 151600\nNNNN") == "TMQ2627"


def test_empty_group_returns_sentinel():
    extractor = RegexSequenceExtractor(pattern=r"ZCZC\s(\d*)\s")

    assert extractor.extract(b"ZCZC  body NNNN") == SEQUENCE_UNKNOWN


def test_custom_sentinel():
    extractor = RegexSequenceExtractor(sentinel="UNKNOWN")

    assert extractor.extract(b"no header here") == "UNKNOWN"


def test_non_ascii_token_is_replaced_not_raised(extractor):
    assert extractor.extract(b"ZCZC T\xe9Q1 x") == "T\ufffdQ1"


@pytest.mark.parametrize("pattern", [r"(a)(b)", "(", ""])
def test_unusable_pattern_is_rejected(pattern):
    with pytest.raises(FramingConfigError):
        RegexSequenceExtractor(pattern=pattern)
