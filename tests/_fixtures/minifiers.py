"""In-process minifiers standing in for terser in tests."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from bundlegen.finalizer import MinifyResult


class StubMinifier:
    """Drops blank lines and line comments; passes the input map's sources through."""

    def __init__(self, error: Optional[str] = None) -> None:
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def minify(self, code: str, input_map: Dict[str, Any], *, url: str) -> MinifyResult:
        self.calls.append({"code": code, "map": input_map, "url": url})
        if self.error is not None:
            return MinifyResult(error=self.error)
        lines = [
            line.strip()
            for line in code.splitlines()
            if line.strip() and not line.strip().startswith("//")
        ]
        source_map = {
            "version": 3,
            "file": input_map.get("file"),
            "sources": list(input_map.get("sources", [])),
            "names": [],
            "mappings": "",
        }
        return MinifyResult(code="\n".join(lines) + f"\n//# sourceMappingURL={url}", map=source_map)


__all__ = ["StubMinifier"]
