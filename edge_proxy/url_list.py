"""Target URL list parsing and random selection for the root path."""

import random
from typing import Callable, List, Sequence

# Characters treated as separators between URLs, in addition to whitespace.
URL_DELIMITERS = ",\"'"
URL_PREFIX = "http"

_DELIMITER_TABLE = str.maketrans({char: " " for char in URL_DELIMITERS})

RandomSource = Callable[[], float]


def parse_urls(raw) -> List[str]:
    """Split a loosely delimited list of URLs.

    Commas, quotes and any whitespace (including newlines) separate entries.
    Entries that do not start with ``http`` are dropped.

    Args:
        raw: The configured value. Anything that is not a string parses
            to an empty list.

    Returns:
        The URLs in their configured order.
    """
    if not raw or not isinstance(raw, str):
        return []
    tokens = raw.translate(_DELIMITER_TABLE).split()
    return [token for token in tokens if token.startswith(URL_PREFIX)]


def choose_url(urls: Sequence[str], random_source: RandomSource = random.random) -> str:
    """Pick one URL uniformly at random.

    Args:
        urls: Non-empty sequence of candidates.
        random_source: Callable returning a float in ``[0, 1)``.

    Raises:
        IndexError: If ``urls`` is empty or the random source is out of range.
    """
    index = int(random_source() * len(urls))
    if index < 0:
        raise IndexError(f"random source produced a negative index: {index}")
    return urls[index]
