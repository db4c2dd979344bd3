"""Enumerate dynamically loadable plugin modules and locale bundles."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Protocol, Sequence, Tuple

from .config import BundleConfig
from .errors import ManifestError, ResolutionError
from .logging import get_logger
from .models import ModuleManifest, ModuleRef

_PLUGIN_SUFFIX = ".js"
_LOCALE_SUFFIXES = (".json", ".js")


class PluginRegistry(Protocol):
    """Source of plugin module paths, relative to their category directory."""

    def list_audit_modules(self) -> Sequence[str]:
        ...

    def list_gatherer_modules(self) -> Sequence[str]:
        ...


class DirectoryPluginRegistry:
    """Lists audits and gatherers by walking their directories on disk."""

    def __init__(self, config: BundleConfig) -> None:
        self._audits_dir = config.source_file(config.audits_dir)
        self._gatherers_dir = config.source_file(config.gatherers_dir)
        self._excludes = frozenset(config.plugin_excludes)

    def list_audit_modules(self) -> List[str]:
        return self._list(self._audits_dir)

    def list_gatherer_modules(self) -> List[str]:
        return self._list(self._gatherers_dir)

    def _list(self, directory: Path) -> List[str]:
        if not directory.is_dir():
            raise ResolutionError(f"Plugin directory not found: {directory}")
        modules = [
            path.relative_to(directory).as_posix()
            for path in directory.rglob(f"*{_PLUGIN_SUFFIX}")
            if path.is_file() and path.name not in self._excludes
        ]
        return sorted(modules)


@dataclass(frozen=True)
class _Category:
    name: str
    directory: str
    source_prefix: str
    public_prefix: str


class ManifestCollector:
    """Builds the module manifest exposed to the bundled runtime."""

    def __init__(self, config: BundleConfig, registry: PluginRegistry | None = None) -> None:
        self.config = config
        self.registry = registry or DirectoryPluginRegistry(config)
        self.logger = get_logger("manifest")
        core = f"./{config.source_root}/"
        driver = f"{core}{config.driver_dir}/"
        self._audits = _Category("audits", config.audits_dir, core, "../")
        self._gatherers = _Category(
            "gatherers", config.gatherers_dir, driver, f"../{config.driver_dir}/"
        )
        self._locales = _Category("locales", config.locales_dir, core, "../")

    def collect_plugin_modules(self) -> Tuple[Tuple[ModuleRef, ...], Tuple[ModuleRef, ...]]:
        """Return (audits, gatherers) with their exposed names."""
        audits = self._refs(self._audits, self.registry.list_audit_modules(), strip_suffix=True)
        gatherers = self._refs(
            self._gatherers, self.registry.list_gatherer_modules(), strip_suffix=True
        )
        self.logger.debug("Collected %d audits and %d gatherers", len(audits), len(gatherers))
        return audits, gatherers

    def collect_locales(self) -> Tuple[ModuleRef, ...]:
        """Return one module per locale resource file."""
        directory = self.config.source_file(self.config.locales_dir)
        if not directory.is_dir():
            raise ResolutionError(f"Locale directory not found: {directory}")
        names = sorted(
            path.name
            for path in directory.iterdir()
            if path.is_file() and path.suffix in _LOCALE_SUFFIXES
        )
        locales = self._refs(self._locales, names, strip_suffix=False)
        self.logger.debug("Collected %d locale bundles", len(locales))
        return locales

    def collect(self) -> ModuleManifest:
        audits, gatherers = self.collect_plugin_modules()
        return ModuleManifest(audits=audits, gatherers=gatherers, locales=self.collect_locales())

    def _refs(
        self, category: _Category, files: Iterable[str], *, strip_suffix: bool
    ) -> Tuple[ModuleRef, ...]:
        refs: List[ModuleRef] = []
        seen: dict[str, Path] = {}
        for file in files:
            listed = f"./{self.config.source_root}/{category.directory}/{file}"
            relative = listed
            if strip_suffix and relative.endswith(_PLUGIN_SUFFIX):
                relative = relative[: -len(_PLUGIN_SUFFIX)]
            exposed = expose_name(relative, category.source_prefix, category.public_prefix)
            source = self._resolve(listed)
            if exposed in seen and seen[exposed] != source:
                raise ManifestError(
                    f"Duplicate exposed name '{exposed}' in {category.name}: "
                    f"{seen[exposed]} and {source}"
                )
            if exposed in seen:
                continue
            seen[exposed] = source
            refs.append(ModuleRef(source_path=source, exposed_name=exposed))
        return tuple(refs)

    def _resolve(self, relative: str) -> Path:
        base = (self.config.root / relative).resolve()
        for candidate in (base, base.with_name(base.name + _PLUGIN_SUFFIX)):
            if candidate.is_file():
                return candidate
        raise ResolutionError(f"Cannot find module '{relative}' from {self.config.root}")


def expose_name(relative: str, source_prefix: str, public_prefix: str) -> str:
    """Rewrite a source-root relative specifier into its public import path."""
    if not relative.startswith(source_prefix):
        raise ManifestError(f"{relative} is outside {source_prefix}")
    return public_prefix + relative[len(source_prefix):]


__all__ = ["DirectoryPluginRegistry", "ManifestCollector", "PluginRegistry", "expose_name"]
