"""Core data models shared across bundlegen components."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, Iterator, Tuple

EMBEDDED_DEBUGGER_HOST = "embedded-debugger-host"
EXTENSION = "extension"

# Base-name substrings that classify an entry point.
_TAG_MARKERS: Tuple[Tuple[str, str], ...] = (
    ("devtools", EMBEDDED_DEBUGGER_HOST),
    ("extension", EXTENSION),
)


@dataclass(frozen=True)
class EntryDescriptor:
    """The root module a build starts from."""

    path: Path

    @property
    def tags(self) -> FrozenSet[str]:
        basename = self.path.name
        return frozenset(tag for marker, tag in _TAG_MARKERS if marker in basename)

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


@dataclass(frozen=True)
class ModuleRef:
    """A force-included module and the public name it is registered under."""

    source_path: Path
    exposed_name: str


@dataclass(frozen=True)
class ModuleManifest:
    """Dynamically loadable modules grouped by category."""

    audits: Tuple[ModuleRef, ...] = ()
    gatherers: Tuple[ModuleRef, ...] = ()
    locales: Tuple[ModuleRef, ...] = ()

    def plugins(self) -> Iterator[ModuleRef]:
        """Yield the modules that must be exposed for runtime lookup."""
        yield from self.audits
        yield from self.gatherers


@dataclass(frozen=True)
class ExclusionSet:
    """Module paths and bare tokens omitted from the bundle graph."""

    modules: FrozenSet[Path] = frozenset()
    tokens: FrozenSet[str] = frozenset()

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Path):
            return item in self.modules
        return item in self.tokens

    def __iter__(self) -> Iterator[object]:
        yield from sorted(self.tokens)
        yield from sorted(self.modules)

    def __len__(self) -> int:
        return len(self.modules) + len(self.tokens)

    def union(self, modules: Iterable[Path] = (), tokens: Iterable[str] = ()) -> "ExclusionSet":
        return ExclusionSet(
            modules=self.modules | frozenset(modules),
            tokens=self.tokens | frozenset(tokens),
        )


@dataclass(frozen=True)
class BuildRequest:
    """An (entry, destination) pair resolved against a working directory."""

    entry_path: Path
    dist_path: Path

    @classmethod
    def from_args(cls, entry: str | Path, dist: str | Path, *, cwd: Path | None = None) -> "BuildRequest":
        base = cwd or Path.cwd()
        return cls(
            entry_path=(base / Path(entry).expanduser()).resolve(),
            dist_path=(base / Path(dist).expanduser()).resolve(),
        )


@dataclass(frozen=True)
class ProvenanceFooter:
    """Trailing comment line recording tool name, version and commit."""

    name: str
    version: str
    commit_hash: str

    def render(self) -> str:
        return f"// {self.name}, browserified. {self.version} ({self.commit_hash})\n"


@dataclass
class Artifact:
    """The on-disk script and its side-car source map."""

    script_path: Path
    map_path: Path

    @classmethod
    def for_dist(cls, dist_path: Path) -> "Artifact":
        return cls(script_path=dist_path, map_path=map_path_for(dist_path))


def map_path_for(dist_path: Path) -> Path:
    """Return the side-car map location for a script path."""
    return dist_path.with_name(f"{dist_path.name}.map")


__all__ = [
    "Artifact",
    "BuildRequest",
    "EMBEDDED_DEBUGGER_HOST",
    "EXTENSION",
    "EntryDescriptor",
    "ExclusionSet",
    "ModuleManifest",
    "ModuleRef",
    "ProvenanceFooter",
    "map_path_for",
]
