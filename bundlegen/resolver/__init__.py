"""Module resolver and bundler back ends."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator, Protocol

from .bundler import CommonJSBundler
from .transforms import Transform, discover_transforms


class ModuleBundler(Protocol):
    """The resolver/bundler contract the graph assembler drives."""

    def transform(self, name: str, *, global_: bool = False, **options: object) -> "ModuleBundler":
        ...

    def ignore(self, target: str | Path | Iterable[str | Path]) -> "ModuleBundler":
        ...

    def require(self, path: Path, *, expose: str) -> "ModuleBundler":
        ...

    def bundle(self) -> Iterator[bytes]:
        ...


__all__ = ["CommonJSBundler", "ModuleBundler", "Transform", "discover_transforms"]
