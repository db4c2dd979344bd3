"""Source map assembly for bundled output."""

from __future__ import annotations

import base64
import json
from typing import Dict, List, Tuple

from calmjs.parse.vlq import encode_mappings

INLINE_PREFIX = "//# sourceMappingURL=data:application/json;charset=utf-8;base64,"

# (generated column, source index, source line, source column), all zero-based.
Segment = Tuple[int, int, int, int]


class SourceMapBuilder:
    """Collects line mappings while the bundle is rendered."""

    def __init__(self) -> None:
        self._sources: List[str] = []
        self._contents: List[str] = []
        self._lines: List[List[Segment]] = []

    def add_source(self, path: str, content: str) -> int:
        self._sources.append(path)
        self._contents.append(content)
        return len(self._sources) - 1

    def skip_lines(self, count: int) -> None:
        """Record ``count`` generated lines with no original position."""
        self._lines.extend([] for _ in range(count))

    def map_lines(self, source_index: int, count: int) -> None:
        """Map ``count`` generated lines one-to-one onto the first lines of a source."""
        for line in range(count):
            self._lines.append([(0, source_index, line, 0)])

    def to_dict(self) -> Dict[str, object]:
        return {
            "version": 3,
            "sources": list(self._sources),
            "names": [],
            "mappings": encode_mappings(self._relative_segments()),
            "sourcesContent": list(self._contents),
        }

    def inline_comment(self) -> str:
        return inline_comment(self.to_dict())

    def _relative_segments(self) -> List[List[List[int]]]:
        # Columns restart every line; the other fields are deltas across the whole map.
        previous_source = previous_line = previous_column = 0
        encoded: List[List[List[int]]] = []
        for line in self._lines:
            previous_generated = 0
            segments: List[List[int]] = []
            for generated, source, source_line, source_column in line:
                segments.append(
                    [
                        generated - previous_generated,
                        source - previous_source,
                        source_line - previous_line,
                        source_column - previous_column,
                    ]
                )
                previous_generated = generated
                previous_source = source
                previous_line = source_line
                previous_column = source_column
            encoded.append(segments)
        return encoded


def inline_comment(payload: Dict[str, object]) -> str:
    """Return the data-URL comment that carries ``payload`` inside a script."""
    encoded = base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")
    return INLINE_PREFIX + encoded


__all__ = ["INLINE_PREFIX", "SourceMapBuilder", "inline_comment"]
