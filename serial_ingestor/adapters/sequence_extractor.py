"""
Sequence identifier extraction for telegrams.
"""

from typing import Union

from ..domain.ports import SequenceExtractor, FramingConfigError
from .telegram_framer import compile_marker


SEQUENCE_UNKNOWN = "TMQ----"
DEFAULT_SEQUENCE_PATTERN = r"ZCZC\s(\S+)\s"


class RegexSequenceExtractor(SequenceExtractor):
    """
    Pulls the sequence token out of a telegram with a regex.

    The first capture group is the identifier; a pattern without groups
    uses the whole match. Misses return the sentinel.
    """

    def __init__(
        self,
        pattern: str = DEFAULT_SEQUENCE_PATTERN,
        sentinel: str = SEQUENCE_UNKNOWN
    ):
        self._pattern = compile_marker(pattern, "sequence pattern")
        if self._pattern.groups > 1:
            raise FramingConfigError(
                f"sequence pattern may have at most one capture group, got {self._pattern.groups}"
            )

        self.pattern = pattern
        self.sentinel = sentinel

    def extract(self, telegram: Union[bytes, str]) -> str:
        if isinstance(telegram, str):
            telegram = telegram.encode("utf-8", errors="replace")
        elif not isinstance(telegram, (bytes, bytearray)):
            return self.sentinel

        match = self._pattern.search(telegram)
        if match is None:
            return self.sentinel

        value = match.group(1) if self._pattern.groups else match.group(0)
        if not value:
            return self.sentinel

        return value.decode("ascii", errors="replace")
