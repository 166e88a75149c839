"""Core utilities for counting words in a text file and rendering an HTML tag cloud."""
from __future__ import annotations

import html
import json
import logging
import os
import string
import tempfile
from collections import Counter
from dataclasses import asdict, dataclass, field
from itertools import groupby
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_SEPARATORS: FrozenSet[str] = frozenset(
    string.whitespace + string.punctuation + string.digits
)

MIN_SIZE_CLASS = 11
MAX_SIZE_CLASS = 48
SIZE_SCALE = 48

DEFAULT_TOP_N = 50
DEFAULT_STYLESHEET = "tagcloud.css"
DEFAULT_CLASS_PREFIX = "f"


class TagCloudError(Exception):
    """Base class for failures that abort a tag cloud run."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class SourceUnreadable(TagCloudError):
    """The source document could not be opened."""


class SourceReadInterrupted(TagCloudError):
    """Reading failed part-way through the source document."""


class OutputUnwritable(TagCloudError):
    """The HTML destination could not be created or written."""


@dataclass
class TagCloudConfig:
    """Configuration for a single tag cloud run."""

    source_path: Path
    output_path: Path
    top_n: int = DEFAULT_TOP_N
    separators: FrozenSet[str] = DEFAULT_SEPARATORS
    stylesheet: str = DEFAULT_STYLESHEET
    class_prefix: str = DEFAULT_CLASS_PREFIX
    encoding: str = "utf-8"

    def __post_init__(self) -> None:
        self.source_path = Path(self.source_path)
        self.output_path = Path(self.output_path)
        self.separators = frozenset(self.separators)
        if isinstance(self.top_n, bool) or not isinstance(self.top_n, int):
            raise TypeError(f"top_n must be an int, got {type(self.top_n).__name__}")
        if self.top_n < 0:
            raise ValueError(f"top_n must be >= 0, got {self.top_n}")


@dataclass(frozen=True)
class Segment:
    text: str
    is_word: bool


@dataclass(frozen=True)
class WordCount:
    word: str
    count: int


@dataclass(frozen=True)
class RankedWord:
    word: str
    count: int
    size_class: int


@dataclass(frozen=True)
class Ranking:
    entries: Tuple[WordCount, ...]
    max_count: int
    min_count: int


@dataclass
class TagCloudResult:
    output_path: Path
    words: List[RankedWord] = field(default_factory=list)
    total_tokens: int = 0
    unique_words: int = 0


class LineSegments:
    """Restartable view of a line as maximal separator / non-separator runs.

    Every call to ``iter()`` walks the line from the start, so the same object
    can be consumed more than once. Joining the yielded segment texts gives the
    original line back.
    """

    def __init__(self, line: str, separators: FrozenSet[str] = DEFAULT_SEPARATORS) -> None:
        self.line = line
        self.separators = separators

    def __iter__(self) -> Iterator[Segment]:
        for is_separator, run in groupby(self.line, key=self.separators.__contains__):
            yield Segment(text="".join(run), is_word=not is_separator)

    def words(self) -> Iterator[str]:
        return (segment.text for segment in self if segment.is_word)


def iter_words(line: str, separators: FrozenSet[str] = DEFAULT_SEPARATORS) -> Iterator[str]:
    return LineSegments(line, separators).words()


def count_words(lines: Iterable[str], separators: FrozenSet[str] = DEFAULT_SEPARATORS) -> Dict[str, int]:
    """Count lowercased words across ``lines``, keyed in first-seen order."""
    counts: Counter = Counter()
    for line in lines:
        for word in iter_words(line, separators):
            counts[word.lower()] += 1
    return dict(counts)


def count_words_in_file(
    path: Path | str,
    *,
    separators: FrozenSet[str] = DEFAULT_SEPARATORS,
    encoding: str = "utf-8",
) -> Dict[str, int]:
    source = Path(path)
    try:
        infile = source.open("r", encoding=encoding)
    except OSError as exc:
        raise SourceUnreadable(f"Cannot open source file {source}: {exc.strerror or exc}", source) from exc

    with infile:
        try:
            return count_words(infile, separators)
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceReadInterrupted(f"Failed while reading {source}: {exc}", source) from exc


def by_count_descending(entry: WordCount) -> int:
    return -entry.count


def by_word_casefold(entry: WordCount) -> str:
    return entry.word.casefold()


def rank_words(counts: Mapping[str, int], top_n: int) -> Ranking:
    """Select the ``top_n`` most frequent words and order them alphabetically.

    ``sorted`` is stable, so words with equal counts keep the order in which
    they first appeared in ``counts``. Asking for more words than exist
    returns all of them.
    """
    if top_n < 0:
        raise ValueError(f"top_n must be >= 0, got {top_n}")

    entries = [WordCount(word, count) for word, count in counts.items()]
    by_frequency = sorted(entries, key=by_count_descending)
    selected = sorted(by_frequency[:top_n], key=by_word_casefold)

    if not selected:
        return Ranking(entries=(), max_count=0, min_count=0)

    selected_counts = [entry.count for entry in selected]
    return Ranking(
        entries=tuple(selected),
        max_count=max(selected_counts),
        min_count=min(selected_counts),
    )


def font_size_classes(counts: Sequence[int], *, min_count: int, max_count: int) -> np.ndarray:
    values = np.asarray(counts, dtype=np.int64)
    sizes = np.full(values.shape, MIN_SIZE_CLASS, dtype=np.int64)
    if max_count <= min_count or values.size == 0:
        return sizes

    scaled = (SIZE_SCALE * (values - min_count)) // (max_count - min_count) + MIN_SIZE_CLASS
    scaled = np.clip(scaled, MIN_SIZE_CLASS + 1, MAX_SIZE_CLASS)
    return np.where(values > min_count, scaled, sizes)


def font_size_class(count: int, *, min_count: int, max_count: int) -> int:
    return int(font_size_classes([count], min_count=min_count, max_count=max_count)[0])


def size_ranking(ranking: Ranking) -> List[RankedWord]:
    sizes = font_size_classes(
        [entry.count for entry in ranking.entries],
        min_count=ranking.min_count,
        max_count=ranking.max_count,
    )
    return [
        RankedWord(word=entry.word, count=entry.count, size_class=int(size))
        for entry, size in zip(ranking.entries, sizes)
    ]


def build_tag_cloud(counts: Mapping[str, int], top_n: int) -> List[RankedWord]:
    return size_ranking(rank_words(counts, top_n))


def words_to_json(words: Iterable[RankedWord]) -> str:
    return json.dumps([asdict(word) for word in words], indent=2)


HTML_HEAD = """<html>
<head>
<title>{heading}</title>
<link href="{stylesheet}" rel="stylesheet" type="text/css">
</head>
<body>
<h2>{heading}</h2>
<hr>
<div class="cdiv">
<p class="cbox">
"""

HTML_WORD = '<span style="cursor:default" class="{css_class}" title="count: {count}">{word}</span>\n'

HTML_CLOSE = """</p>
</div>
</body>
</html>
"""


def render_html(
    words: Sequence[RankedWord],
    *,
    source_name: str,
    top_n: int,
    stylesheet: str = DEFAULT_STYLESHEET,
    class_prefix: str = DEFAULT_CLASS_PREFIX,
) -> str:
    heading = html.escape(f"Top {top_n} words in {source_name}")
    parts = [HTML_HEAD.format(heading=heading, stylesheet=html.escape(stylesheet))]
    for word in words:
        parts.append(HTML_WORD.format(
            css_class=html.escape(f"{class_prefix}{word.size_class}"),
            count=word.count,
            word=html.escape(word.word),
        ))
    parts.append(HTML_CLOSE)
    return "".join(parts)


def write_output(path: Path | str, document: str, *, encoding: str = "utf-8") -> Path:
    """Write ``document`` to ``path`` so that either the whole file lands or nothing does.

    Missing parent directories are created here, once the document is ready.
    """
    target = Path(path)
    tmp_name: Optional[str] = None
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        with os.fdopen(fd, "w", encoding=encoding) as outfile:
            outfile.write(document)
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, target)
    except (OSError, UnicodeEncodeError) as exc:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise OutputUnwritable(f"Cannot write output {target}: {exc}", target) from exc
    return target


def write_html(path: Path | str, document: str, *, encoding: str = "utf-8") -> Path:
    return write_output(path, document, encoding=encoding)


def generate_tag_cloud(config: TagCloudConfig) -> TagCloudResult:
    logger.debug("Reading %s", config.source_path)
    counts = count_words_in_file(
        config.source_path,
        separators=config.separators,
        encoding=config.encoding,
    )
    total_tokens = sum(counts.values())
    logger.debug("Aggregated %d tokens into %d distinct words", total_tokens, len(counts))

    words = build_tag_cloud(counts, config.top_n)
    logger.debug("Ranked %d of %d words (requested %d)", len(words), len(counts), config.top_n)

    document = render_html(
        words,
        source_name=config.source_path.name,
        top_n=config.top_n,
        stylesheet=config.stylesheet,
        class_prefix=config.class_prefix,
    )
    write_html(config.output_path, document)
    logger.info("Wrote %d words from %s to %s", len(words), config.source_path, config.output_path)

    return TagCloudResult(
        output_path=config.output_path,
        words=words,
        total_tokens=total_tokens,
        unique_words=len(counts),
    )
