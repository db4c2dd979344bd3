"""Decide which optional subsystems an entry point's target environment drops."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from .config import BundleConfig
from .errors import ResolutionError
from .logging import get_logger
from .models import EMBEDDED_DEBUGGER_HOST, EXTENSION, EntryDescriptor, ExclusionSet, ModuleRef

# Libraries with no browser-safe implementation or no runtime use in the bundle.
PLATFORM_TOKENS = (
    "source-map",
    "debug/node",
    "intl",
    "intl-pluralrules",
    "raven",
    "mkdirp",
    "rimraf",
    "pako/lib/zlib/inflate.js",
)


class ExclusionPolicy:
    """Computes the exclusion set for an entry point."""

    def __init__(self, config: BundleConfig) -> None:
        self.config = config
        self.logger = get_logger("exclusions")

    def compute(self, entry: EntryDescriptor, locales: Sequence[ModuleRef]) -> ExclusionSet:
        # Rules are independent; each one only adds to the set.
        exclusions = ExclusionSet(
            modules=frozenset({self._module(self.config.modules.transport)}),
            tokens=frozenset((*PLATFORM_TOKENS, *self.config.ignore)),
        )

        if entry.has_tag(EMBEDDED_DEBUGGER_HOST):
            exclusions = exclusions.union(modules=[self._module(self.config.modules.report_assets)])

        if entry.has_tag(EMBEDDED_DEBUGGER_HOST) or entry.has_tag(EXTENSION):
            exclusions = exclusions.union(modules=(ref.source_path for ref in locales))

        self.logger.debug(
            "Entry %s (tags: %s) excludes %d modules and %d tokens",
            entry.path.name,
            ", ".join(sorted(entry.tags)) or "none",
            len(exclusions.modules),
            len(exclusions.tokens),
        )
        return exclusions

    def _module(self, relative: str) -> Path:
        path = self.config.source_file(relative).resolve()
        if not path.is_file():
            raise ResolutionError(f"Cannot find module '{relative}' under {self.config.source_dir}")
        return path


__all__ = ["ExclusionPolicy", "PLATFORM_TOKENS"]
