"""Incremental extraction of ``<artifact>`` blocks from streamed text.

Models emit artifacts inline with the narrative::

    Here you go:
    <artifact type="code" title="main.py" language="python">
    print("hi")
    </artifact>

Text arrives in fragments that can split anywhere, including inside the
opening tag or the closing ``</artifact>``.  :class:`ArtifactParser`
buffers just enough text to never leak a partial tag: plain text is held
back while its tail could still grow into ``<artifact`` and artifact
content is held back while its tail could still grow into
``</artifact>``.

Attribute names are case-insensitive, order does not matter and unknown
attributes are ignored.  ``type`` defaults to ``"code"`` and ``title`` to
``"Untitled"``.  Artifacts without an ``id`` get ``art_<n>``, where ``n``
counts every artifact this parser instance has seen, starting at 1.

An opening tag must close within ``MAX_TAG_LENGTH`` characters; prose
that merely mentions ``<artifact`` is released as text once that limit
is passed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

OPEN_MARKER = "<artifact"
CLOSE_MARKER = "</artifact>"
DEFAULT_TYPE = "code"
DEFAULT_TITLE = "Untitled"
# An opening tag whose ">" is further than this from its "<" is plain text.
MAX_TAG_LENGTH = 1024

_ATTRIBUTE = re.compile(r'([A-Za-z_][\w:.-]*)\s*=\s*"([^"]*)"')


@dataclass
class ArtifactStarted:
    id: str
    type: str
    title: str
    language: str | None = None


@dataclass
class ArtifactContent:
    id: str
    type: str
    content_delta: str


@dataclass
class ArtifactCompleted:
    id: str
    type: str
    title: str
    content: str
    language: str | None = None


ArtifactUpdate = ArtifactStarted | ArtifactContent | ArtifactCompleted


@dataclass
class Artifact:
    """A fully received artifact."""

    id: str
    type: str
    title: str
    content: str
    language: str | None = None
    metadata: dict | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @classmethod
    def from_completed(cls, event: ArtifactCompleted) -> Artifact:
        return cls(
            id=event.id,
            type=event.type,
            title=event.title,
            content=event.content,
            language=event.language,
        )


@dataclass
class IncrementalParseResult:
    """Everything one fragment produced, in input order.

    ``items`` interleaves plain-text pieces (``str``) with artifact
    events.  ``incomplete`` is only set by :meth:`ArtifactParser.finish`
    when the stream ended inside an artifact.
    """

    items: list[str | ArtifactUpdate] = field(default_factory=list)
    incomplete: ArtifactStarted | None = None

    @property
    def text_delta(self) -> str:
        return "".join(i for i in self.items if isinstance(i, str))

    @property
    def artifact_events(self) -> list[ArtifactUpdate]:
        return [i for i in self.items if not isinstance(i, str)]

    @property
    def started(self) -> ArtifactStarted | None:
        return self._first(ArtifactStarted)

    @property
    def content(self) -> ArtifactContent | None:
        return self._first(ArtifactContent)

    @property
    def completed(self) -> ArtifactCompleted | None:
        return self._first(ArtifactCompleted)

    def _first(self, kind):
        for item in self.items:
            if isinstance(item, kind):
                return item
        return None


@dataclass
class ParseResult:
    artifacts: list[Artifact] = field(default_factory=list)
    text_without_artifacts: str = ""


@dataclass
class _OpenArtifact:
    id: str
    type: str
    title: str
    language: str | None
    parts: list[str] = field(default_factory=list)

    def started(self) -> ArtifactStarted:
        return ArtifactStarted(
            id=self.id, type=self.type, title=self.title,
            language=self.language,
        )


def parse_attributes(tag: str) -> dict[str, str]:
    """Return the attributes of an opening tag, names lowercased.

    The first occurrence of a repeated attribute wins.
    """
    attrs: dict[str, str] = {}
    for name, value in _ATTRIBUTE.findall(tag):
        attrs.setdefault(name.lower(), value)
    return attrs


def _partial_suffix(text: str, marker: str) -> int:
    """Length of the longest tail of *text* that is a proper prefix of *marker*."""
    for size in range(min(len(marker) - 1, len(text)), 0, -1):
        if text.endswith(marker[:size]):
            return size
    return 0


def _tag_end(text: str, start: int, limit: int) -> int:
    """Index of the ``>`` closing an opening tag, ignoring quoted ``>``.

    Only indices below *limit* are considered.
    """
    quoted = False
    for i in range(start, min(len(text), limit)):
        ch = text[i]
        if ch == '"':
            quoted = not quoted
        elif ch == ">" and not quoted:
            return i
    return -1


class ArtifactParser:
    """Stateful scanner for one streaming session.

    Feed fragments with :meth:`parse_incremental` and call :meth:`finish`
    once the stream is over.  The fallback-id counter survives
    :meth:`finish`, so a parser reused across the turns of one tool loop
    never hands out the same ``art_<n>`` twice.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._open: _OpenArtifact | None = None
        self._counter = 0

    @property
    def open_artifact(self) -> ArtifactStarted | None:
        return self._open.started() if self._open else None

    @classmethod
    def parse(cls, text: str) -> ParseResult:
        """Extract every complete artifact from a full response."""
        parser = cls()
        results = [parser.parse_incremental(text), parser.finish()]
        return ParseResult(
            artifacts=[
                Artifact.from_completed(event)
                for r in results
                for event in r.artifact_events
                if isinstance(event, ArtifactCompleted)
            ],
            text_without_artifacts="".join(r.text_delta for r in results),
        )

    def parse_incremental(self, fragment: str) -> IncrementalParseResult:
        result = IncrementalParseResult()
        self._buffer += fragment
        progressed = True
        while progressed:
            if self._open is None:
                progressed = self._scan_text(result)
            else:
                progressed = self._scan_content(result)
        return result

    def finish(self) -> IncrementalParseResult:
        """Flush whatever is still buffered at end of stream.

        Buffered plain text, including an opening tag that never closed,
        comes out as text.  If an artifact is still open its held-back
        tail is emitted as a last content delta, no completion is
        produced and ``incomplete`` names the artifact.
        """
        result = IncrementalParseResult()
        if self._open is None:
            if self._buffer:
                result.items.append(self._buffer)
        else:
            if self._buffer:
                self._emit_content(result, self._buffer)
            result.incomplete = self._open.started()
            logger.debug(f"Stream ended inside artifact {self._open.id}")
        self._buffer = ""
        self._open = None
        return result

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def _scan_text(self, result: IncrementalParseResult) -> bool:
        buf = self._buffer
        search_from = 0
        while True:
            start = buf.find(OPEN_MARKER, search_from)
            if start == -1:
                cut = len(buf) - _partial_suffix(buf, OPEN_MARKER)
                self._emit_text(result, buf[:cut])
                self._buffer = buf[cut:]
                return False

            after = start + len(OPEN_MARKER)
            if after < len(buf) and not (buf[after].isspace() or buf[after] == ">"):
                # ``<artifacts``, ``<artifactory`` and friends are plain text
                search_from = start + 1
                continue

            end = _tag_end(buf, after, start + MAX_TAG_LENGTH)
            if end == -1 and len(buf) - start > MAX_TAG_LENGTH:
                search_from = start + 1
                continue

            self._emit_text(result, buf[:start])
            if end == -1:
                self._buffer = buf[start:]
                return False

            self._open_artifact(buf[start:end + 1])
            result.items.append(self._open.started())
            self._buffer = buf[end + 1:]
            return True

    def _scan_content(self, result: IncrementalParseResult) -> bool:
        buf = self._buffer
        end = buf.find(CLOSE_MARKER)
        if end == -1:
            cut = len(buf) - _partial_suffix(buf, CLOSE_MARKER)
            if cut:
                self._emit_content(result, buf[:cut])
            self._buffer = buf[cut:]
            return False

        if end:
            self._emit_content(result, buf[:end])
        art = self._open
        result.items.append(ArtifactCompleted(
            id=art.id, type=art.type, title=art.title,
            content="".join(art.parts), language=art.language,
        ))
        logger.debug(f"Artifact {art.id} completed")
        self._open = None
        self._buffer = buf[end + len(CLOSE_MARKER):]
        return True

    def _open_artifact(self, tag: str) -> None:
        attrs = parse_attributes(tag)
        self._counter += 1
        self._open = _OpenArtifact(
            id=attrs.get("id") or f"art_{self._counter}",
            type=attrs.get("type") or DEFAULT_TYPE,
            title=attrs.get("title") or DEFAULT_TITLE,
            language=attrs.get("language") or None,
        )
        logger.debug(f"Artifact {self._open.id} started ({self._open.type})")

    def _emit_text(self, result: IncrementalParseResult, text: str) -> None:
        if text:
            result.items.append(text)

    def _emit_content(self, result: IncrementalParseResult, text: str) -> None:
        self._open.parts.append(text)
        result.items.append(ArtifactContent(
            id=self._open.id, type=self._open.type, content_delta=text,
        ))
