"""Node-style module resolution."""

from __future__ import annotations

import json
import posixpath
from pathlib import Path
from typing import Iterator, Mapping, Optional

from ..errors import ResolutionError

EXTENSIONS = (".js", ".json")


class ModuleResolver:
    """Resolves ``require()`` specifiers to files the way node does.

    Builtins are looked up in ``builtins``: a shim specifier is resolved from the
    project root, ``None`` resolves to the empty module (returned as ``None``).
    """

    def __init__(self, root: Path, builtins: Mapping[str, Optional[str]] | None = None) -> None:
        self.root = root.resolve()
        self.builtins = dict(builtins or {})

    def resolve(self, specifier: str, basedir: Path) -> Optional[Path]:
        if not specifier:
            raise ResolutionError(f"Empty module specifier in {basedir}")

        if _is_path_specifier(specifier):
            base = Path(specifier) if specifier.startswith("/") else basedir / specifier
            found = self._load(base)
            if found is None:
                raise ResolutionError(f"Cannot find module '{specifier}' from '{basedir}'")
            return found

        if specifier in self.builtins:
            shim = self.builtins[specifier]
            if shim is None:
                return None
            if shim != specifier:
                return self.resolve(shim, self.root)

        for directory in self._node_modules_dirs(basedir):
            found = self._load(directory / specifier)
            if found is not None:
                return found
        raise ResolutionError(f"Cannot find module '{specifier}' from '{basedir}'")

    def try_resolve(self, specifier: str, basedir: Path) -> Optional[Path]:
        """Return the resolved file, or ``None`` when it cannot be found."""
        try:
            return self.resolve(specifier, basedir)
        except ResolutionError:
            return None

    # ------------------------------------------------------------------
    # Helpers

    def _load(self, base: Path) -> Optional[Path]:
        found = _load_as_file(base) or _load_as_directory(base)
        return found.resolve() if found is not None else None

    def _node_modules_dirs(self, basedir: Path) -> Iterator[Path]:
        seen = set()
        for directory in (basedir.resolve(), *basedir.resolve().parents, self.root):
            if directory.name == "node_modules":
                continue
            candidate = directory / "node_modules"
            if candidate in seen:
                continue
            seen.add(candidate)
            if candidate.is_dir():
                yield candidate


def _is_path_specifier(specifier: str) -> bool:
    return specifier in (".", "..") or specifier.startswith(("./", "../", "/"))


def _load_as_file(base: Path) -> Optional[Path]:
    if base.is_file():
        return base
    for extension in EXTENSIONS:
        candidate = base.with_name(base.name + extension)
        if candidate.is_file():
            return candidate
    return None


def _load_as_directory(base: Path) -> Optional[Path]:
    if not base.is_dir():
        return None
    main = _package_main(base / "package.json")
    if main:
        target = base / main
        found = _load_as_file(target) or _load_as_index(target)
        if found is not None:
            return found
    return _load_as_index(base)


def _load_as_index(base: Path) -> Optional[Path]:
    for extension in EXTENSIONS:
        candidate = base / f"index{extension}"
        if candidate.is_file():
            return candidate
    return None


def _package_main(package_json: Path) -> Optional[str]:
    if not package_json.is_file():
        return None
    try:
        payload = json.loads(package_json.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ResolutionError(f"Invalid package.json at {package_json}: {exc}") from exc
    if not isinstance(payload, dict):
        return None

    main = payload.get("main") if isinstance(payload.get("main"), str) else None
    browser = payload.get("browser")
    if isinstance(browser, str):
        return browser
    if isinstance(browser, dict) and main:
        # Object form maps the main file to its browser replacement.
        for key in (main, f"./{posixpath.normpath(main)}", posixpath.normpath(main)):
            replacement = browser.get(key)
            if isinstance(replacement, str):
                return replacement
    return main


__all__ = ["EXTENSIONS", "ModuleResolver"]
