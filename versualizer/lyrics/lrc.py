"""
LRC timed-lyrics model and parser.

Supported syntax:
    [ti:Title] [ar:Artist] [al:Album] [au:Author] [length:03:45] [offset:+500]
    [mm:ss.xx]Plain line of text
    [mm:ss:xx]Colon as hundredths separator (a quirk of some sources)
    [mm:ss]Whole seconds only
    [00:05.00][00:15.00]Repeated line, one LyricLine per timestamp
    [00:10.00]<00:10.00>Enhanced <00:10.50>word <00:11.00>timing

parse() never raises on malformed input: unknown tags and lines that are
not timestamped are skipped. The [offset:N] tag (signed milliseconds) is
applied exactly once, after all lines are collected, and times are clamped
at zero. Lines come out stable-sorted by start time.

All times are integer milliseconds.
"""

import bisect
import re
from dataclasses import dataclass, field, replace


# Fill duration for the final line when nothing else bounds it
DEFAULT_LINE_DURATION_MS = 5000

_TIMESTAMP_RE = re.compile(r"^(\d+):(\d+)(?:([.:])(\d+))?$", re.ASCII)
_ID_TAG_NAME_RE = re.compile(r"^\d*$", re.ASCII)
_OFFSET_RE = re.compile(r"^[+-]?\d+$", re.ASCII)


@dataclass(frozen=True)
class Word:
    """
    A syllable or word with its own timing (enhanced LRC).

    Attributes:
        start_ms: When the word starts.
        text: The word itself.
        end_ms: When the word ends. For parsed files this is the next
                word's start; the last word of a line has none.
    """
    start_ms: int
    text: str
    end_ms: int | None = None


@dataclass(frozen=True)
class LyricLine:
    """
    One timed line of lyrics.

    Attributes:
        start_ms: When the line becomes active.
        text: Display text. For enhanced lines, the words joined by spaces.
        words: Word-level timing, or None for plain lines.
    """
    start_ms: int
    text: str
    words: tuple[Word, ...] | None = None

    def progress(self, position_ms: int, next_line_start_ms: int | None = None) -> float:
        """
        Fill ratio (0.0 to 1.0) of this line at the given position.

        The line ends at the last word's end time when word timing carries
        one, else at the next line's start, else DEFAULT_LINE_DURATION_MS
        after this line's start.
        """
        if position_ms < self.start_ms:
            return 0.0

        end_ms = None
        if self.words:
            end_ms = self.words[-1].end_ms
        if end_ms is None:
            end_ms = next_line_start_ms
        if end_ms is None:
            end_ms = self.start_ms + DEFAULT_LINE_DURATION_MS

        if position_ms >= end_ms:
            return 1.0

        total = max(0, end_ms - self.start_ms)
        if total == 0:
            return 1.0

        elapsed = position_ms - self.start_ms
        return min(1.0, max(0.0, elapsed / total))

    def word_progress(self, position_ms: int, char_index: int) -> float:
        """
        Whether the character at char_index should be drawn as sung.

        Returns 1.0 (sung) or 0.0 (not yet). With word timing the
        character's word decides; without it the line progress is compared
        to the character's relative position in the text.
        """
        total_chars = len(self.text)
        if total_chars == 0:
            return 1.0

        if self.words:
            current_char = 0
            for word in self.words:
                word_len = len(word.text)
                word_end_char = current_char + word_len

                if char_index < word_end_char:
                    if position_ms < word.start_ms:
                        return 0.0
                    if word.end_ms is None:
                        return 1.0
                    if position_ms >= word.end_ms:
                        return 1.0

                    word_duration = max(0, word.end_ms - word.start_ms)
                    if word_duration == 0:
                        return 1.0

                    char_progress = (char_index - current_char) / word_len
                    time_progress = (position_ms - word.start_ms) / word_duration
                    return 1.0 if time_progress >= char_progress else 0.0

                current_char = word_end_char
                # Separator space between words
                if current_char < total_chars:
                    current_char += 1

        line_progress = self.progress(position_ms)
        return 1.0 if line_progress >= char_index / total_chars else 0.0


@dataclass(frozen=True)
class LrcMetadata:
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    author: str | None = None
    length_ms: int | None = None
    offset_ms: int = 0


@dataclass(frozen=True)
class TimedLyrics:
    """
    Parsed lyrics: lines sorted ascending by start time plus metadata.

    Instances are immutable and safe to share between tasks.
    """
    lines: tuple[LyricLine, ...] = ()
    metadata: LrcMetadata = field(default_factory=LrcMetadata)

    @classmethod
    def from_lines(cls, lines: list[LyricLine], metadata: LrcMetadata | None = None) -> "TimedLyrics":
        """Build from unsorted lines (stable sort by start time)."""
        ordered = sorted(lines, key=lambda line: line.start_ms)
        return cls(lines=tuple(ordered), metadata=metadata or LrcMetadata())

    def __len__(self) -> int:
        return len(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def line_index_at(self, position_ms: int) -> int | None:
        """Index of the last line whose start is <= position, or None before the first line."""
        starts = [line.start_ms for line in self.lines]
        index = bisect.bisect_right(starts, position_ms) - 1
        return index if index >= 0 else None

    def current_line(self, position_ms: int) -> LyricLine | None:
        index = self.line_index_at(position_ms)
        return self.lines[index] if index is not None else None

    def next_line_start(self, index: int) -> int | None:
        if index + 1 < len(self.lines):
            return self.lines[index + 1].start_ms
        return None

    def progress(self, position_ms: int) -> float:
        """Fill ratio of the active line, 0.0 when no line is active yet."""
        index = self.line_index_at(position_ms)
        if index is None:
            return 0.0
        return self.lines[index].progress(position_ms, self.next_line_start(index))

    def visible_lines(self, position_ms: int, before: int, after: int) -> list[LyricLine]:
        """
        Window of lines around the active one.

        Before the first line starts, the window is anchored at index 0,
        so the first after + 1 lines are returned.
        """
        index = self.line_index_at(position_ms)
        if index is None:
            index = 0
        start = max(0, index - before)
        end = min(len(self.lines), index + after + 1)
        return list(self.lines[start:end])

    def plain_text(self) -> str:
        return "\n".join(line.text for line in self.lines)

    def to_lrc(self) -> str:
        """
        Serialize back to LRC.

        Times already include any offset from the source file, so no
        [offset:] tag is written; parsing the output yields the same times.
        """
        out: list[str] = []
        meta = self.metadata
        for tag, value in (("ti", meta.title), ("ar", meta.artist), ("al", meta.album), ("au", meta.author)):
            if value:
                out.append(f"[{tag}:{value}]")

        for line in self.lines:
            if line.words:
                words = " ".join(f"<{format_timestamp(w.start_ms)}>{w.text}" for w in line.words)
                out.append(f"[{format_timestamp(line.start_ms)}]{words}")
            else:
                out.append(f"[{format_timestamp(line.start_ms)}]{line.text}")

        return "\n".join(out)


def format_timestamp(ms: int) -> str:
    """Format milliseconds as mm:ss.xx (hundredths, truncated)."""
    ms = max(0, ms)
    minutes, rest = divmod(ms, 60_000)
    seconds, millis = divmod(rest, 1000)
    return f"{minutes:02d}:{seconds:02d}.{millis // 10:02d}"


def parse_timestamp(value: str) -> int | None:
    """
    Parse mm:ss, mm:ss.xx or mm:ss:xx into milliseconds.

    The fraction after '.' is decimal seconds (".5" is 500ms, ".345" is
    345ms). After ':' it is hundredths. Returns None if malformed.
    """
    match = _TIMESTAMP_RE.match(value.strip())
    if not match:
        return None

    minutes, seconds, separator, fraction = match.groups()
    total = int(minutes) * 60_000 + int(seconds) * 1000

    if fraction is not None:
        if separator == ":":
            total += int(fraction) * 10
        else:
            total += int((fraction + "000")[:3])

    return total


def _parse_id_tag(line: str) -> tuple[str, str] | None:
    if not line.startswith("[") or ":" not in line:
        return None

    end = line.find("]")
    if end == -1:
        return None

    content = line[1:end]
    colon = content.find(":")
    if colon == -1:
        return None

    name = content[:colon]
    # A numeric "tag" is really a timestamp
    if _ID_TAG_NAME_RE.match(name):
        return None

    return name, content[colon + 1:].strip()


def _parse_length(value: str) -> int | None:
    parts = value.split(":")
    if len(parts) != 2:
        return None
    try:
        minutes = int(parts[0])
        seconds = float(parts[1])
    except ValueError:
        return None
    if minutes < 0 or seconds < 0:
        return None
    return int(round((minutes * 60 + seconds) * 1000))


def _parse_enhanced_words(text: str) -> tuple[Word, ...] | None:
    if "<" not in text:
        return None

    starts: list[tuple[int, str]] = []
    remaining = text.strip()

    while remaining:
        if remaining.startswith("<"):
            end = remaining.find(">")
            if end == -1:
                break
            start_ms = parse_timestamp(remaining[1:end])
            remaining = remaining[end + 1:]
            if start_ms is None:
                continue

            word_end = remaining.find("<")
            if word_end == -1:
                word_end = len(remaining)
            word_text = remaining[:word_end].strip()
            if word_text:
                starts.append((start_ms, word_text))
            remaining = remaining[word_end:]
        else:
            next_tag = remaining.find("<")
            remaining = remaining[next_tag:] if next_tag != -1 else ""

    if not starts:
        return None

    words = []
    for i, (start_ms, word_text) in enumerate(starts):
        end_ms = starts[i + 1][0] if i + 1 < len(starts) else None
        words.append(Word(start_ms=start_ms, text=word_text, end_ms=end_ms))
    return tuple(words)


def _parse_lyric_line(line: str) -> list[LyricLine]:
    timestamps: list[int] = []
    remaining = line

    while remaining.startswith("["):
        end = remaining.find("]")
        if end == -1:
            break
        start_ms = parse_timestamp(remaining[1:end])
        if start_ms is None:
            break
        timestamps.append(start_ms)
        remaining = remaining[end + 1:]

    if not timestamps:
        return []

    text = remaining.strip()
    words = _parse_enhanced_words(text)
    if words is not None:
        text = " ".join(word.text for word in words)

    return [LyricLine(start_ms=start_ms, text=text, words=words) for start_ms in timestamps]


def _shift(ms: int | None, offset_ms: int) -> int | None:
    if ms is None:
        return None
    return max(0, ms + offset_ms)


def _apply_offset(line: LyricLine, offset_ms: int) -> LyricLine:
    words = None
    if line.words is not None:
        words = tuple(
            Word(start_ms=_shift(w.start_ms, offset_ms), text=w.text, end_ms=_shift(w.end_ms, offset_ms))
            for w in line.words
        )
    return replace(line, start_ms=_shift(line.start_ms, offset_ms), words=words)


def parse(text: str) -> TimedLyrics:
    """
    Parse LRC text into TimedLyrics.

    Never raises for malformed content; bad lines and unknown tags are
    skipped.
    """
    meta: dict[str, object] = {}
    lines: list[LyricLine] = []

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        tag = _parse_id_tag(line)
        if tag is not None:
            name, value = tag
            name = name.lower()
            if name == "ti":
                meta["title"] = value
            elif name == "ar":
                meta["artist"] = value
            elif name == "al":
                meta["album"] = value
            elif name == "au":
                meta["author"] = value
            elif name == "length":
                meta["length_ms"] = _parse_length(value)
            elif name == "offset" and _OFFSET_RE.match(value):
                meta["offset_ms"] = int(value)
            continue

        lines.extend(_parse_lyric_line(line))

    metadata = LrcMetadata(**meta)
    if metadata.offset_ms:
        lines = [_apply_offset(line, metadata.offset_ms) for line in lines]

    return TimedLyrics.from_lines(lines, metadata)
