"""Stream a bundle to disk, splitting its inline source map into a side-car file."""

from __future__ import annotations

import base64
import binascii
import json
import os
import re
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional

from .errors import ArtifactIOError
from .logging import get_logger
from .models import Artifact, ProvenanceFooter
from .resolver import ModuleBundler

_MAP_COMMENT_RE = re.compile(
    rb"^\s*//[#@]\s*sourceMappingURL=data:application/json(?:;charset=[\w-]+)?;base64,(?P<data>[A-Za-z0-9+/=]+)\s*$"
)


class SourceMapExtractor:
    """Pass-through stage that lifts the inline map comment out of a byte stream.

    Complete lines are forwarded as soon as they arrive; only the trailing
    partial line and the latest map-comment line are held back. Only a map
    comment that ends the stream is lifted: earlier ones belong to bundled
    modules and pass through as code, so line numbers stay aligned with the
    map. The lifted comment is replaced with a reference to the side-car file
    and its payload is kept on :attr:`source_map`.
    """

    def __init__(self, map_path: Path) -> None:
        self.map_path = map_path
        self.source_map: Optional[Dict[str, object]] = None
        self._held: Optional[re.Match[bytes]] = None

    def process(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        pending = b""
        for chunk in chunks:
            pending += chunk
            if b"\n" not in pending:
                continue
            complete, pending = pending.rsplit(b"\n", 1)
            out = self._filter(complete.split(b"\n"))
            if out:
                yield out
        if pending:
            out = self._filter([pending])
            if out:
                yield out
        if self._held is None:
            raise ArtifactIOError(f"Bundle stream carried no inline source map for {self.map_path}")
        self.source_map = self._decode(self._held.group("data"))
        self._held = None
        yield f"//# sourceMappingURL={self.map_path.name}\n".encode("utf-8")

    def _filter(self, lines: Iterable[bytes]) -> bytes:
        kept = []
        for line in lines:
            if self._held is not None:
                # Something follows the held comment, so it was module code.
                kept.append(self._held.string + b"\n")
                self._held = None
            match = _MAP_COMMENT_RE.match(line)
            if match is not None:
                self._held = match
            else:
                kept.append(line + b"\n")
        return b"".join(kept)

    def _decode(self, data: bytes) -> Dict[str, object]:
        try:
            payload = json.loads(base64.b64decode(data, validate=True).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ArtifactIOError(f"Inline source map for {self.map_path} is malformed: {exc}") from exc
        if not isinstance(payload, dict):
            raise ArtifactIOError(f"Inline source map for {self.map_path} is not an object")
        return payload

    def relocated_map(self, script_path: Path) -> Dict[str, object]:
        """Return the extracted map with sources relative to the map file's directory."""
        if self.source_map is None:
            raise ArtifactIOError(f"No source map extracted for {script_path}")
        payload = dict(self.source_map)
        base = self.map_path.parent
        sources = payload.get("sources")
        if isinstance(sources, list):
            payload["sources"] = [_relative_source(str(source), base) for source in sources]
        payload["file"] = script_path.name
        return payload


class ArtifactWriter:
    """Drains the bundle graph into ``dist_path`` and ``dist_path.map``."""

    def __init__(self, footer: ProvenanceFooter) -> None:
        self.footer = footer
        self.logger = get_logger("writer")

    def write(self, graph: ModuleBundler, dist_path: Path) -> Artifact:
        artifact = Artifact.for_dist(dist_path)
        try:
            dist_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ArtifactIOError(f"Cannot create {dist_path.parent}: {exc}") from exc

        extractor = SourceMapExtractor(artifact.map_path)
        written = self._stream_to_file(extractor.process(graph.bundle()), dist_path)
        self._write_map(artifact.map_path, extractor.relocated_map(dist_path))

        # Appended only after the stream is fully flushed and closed.
        try:
            content = dist_path.read_text(encoding="utf-8")
            dist_path.write_text(content + "\n" + self.footer.render(), encoding="utf-8")
        except OSError as exc:
            raise ArtifactIOError(f"Cannot stamp footer on {dist_path}: {exc}") from exc

        self.logger.info("Wrote %s (%d bytes) and %s", dist_path, written, artifact.map_path.name)
        return artifact

    def _stream_to_file(self, chunks: Iterator[bytes], dist_path: Path) -> int:
        # Pull the first chunk before opening the file so graph errors abort before any write.
        first = next(chunks, None)
        written = 0
        try:
            with dist_path.open("wb") as handle:
                if first is not None:
                    written += handle.write(first)
                for chunk in chunks:
                    written += handle.write(chunk)
        except OSError as exc:
            if isinstance(exc, ArtifactIOError):
                raise
            raise ArtifactIOError(f"Cannot write {dist_path}: {exc}") from exc
        return written

    @staticmethod
    def _write_map(map_path: Path, payload: Dict[str, object]) -> None:
        try:
            map_path.write_text(json.dumps(payload), encoding="utf-8")
        except OSError as exc:
            raise ArtifactIOError(f"Cannot write {map_path}: {exc}") from exc


def _relative_source(source: str, base: Path) -> str:
    if not os.path.isabs(source):
        return source
    return Path(os.path.relpath(source, base)).as_posix()


__all__ = ["ArtifactWriter", "SourceMapExtractor"]
