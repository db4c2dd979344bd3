"""A CommonJS bundler producing a single browser script with an inline source map."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from jinja2 import Environment, FileSystemLoader

from ..errors import ResolutionError, TransformError
from ..logging import get_logger
from .requires import find_requires
from .resolve import ModuleResolver
from .sourcemap import SourceMapBuilder
from .transforms import Transform, TransformFactory, create_transform, discover_transforms

_EMPTY_KEY = "_empty.js"
_TEMPLATES_DIR = Path(__file__).with_name("templates")


@dataclass
class _Module:
    key: str
    path: Optional[Path]
    original: str
    source: str
    deps: Dict[str, str] = field(default_factory=dict)


@dataclass
class _TransformSpec:
    transform: Transform
    global_: bool


class CommonJSBundler:
    """Resolves the graph rooted at ``entry`` and renders it as one script.

    Configuration calls (``transform``, ``ignore``, ``require``) are cheap and
    return the bundler so they can be chained; all file reads happen when the
    stream returned by :meth:`bundle` is first pulled.
    """

    def __init__(
        self,
        entry: Path,
        *,
        root: Path,
        builtins: Mapping[str, Optional[str]] | None = None,
        transforms: Mapping[str, TransformFactory] | None = None,
    ) -> None:
        self.entry = entry
        self.root = root.resolve()
        self.resolver = ModuleResolver(self.root, builtins)
        self.logger = get_logger("resolver")
        self._factories = dict(transforms) if transforms is not None else discover_transforms()
        self._transforms: List[_TransformSpec] = []
        self._ignored_tokens: Set[str] = set()
        self._ignored_files: Set[Path] = set()
        self._exposed: Dict[str, Path] = {}
        self._environment = Environment(
            loader=FileSystemLoader(str(_TEMPLATES_DIR)),
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
        )

    # ------------------------------------------------------------------
    # Configuration

    def transform(self, name: str, *, global_: bool = False, **options: object) -> "CommonJSBundler":
        """Register a named source transform; global transforms also run on node_modules."""
        instance = create_transform(name, self._factories, **options)
        self._transforms.append(_TransformSpec(transform=instance, global_=global_))
        return self

    def ignore(self, target: str | Path | Iterable[str | Path]) -> "CommonJSBundler":
        """Omit a module from the graph, by bare token or by file path."""
        if isinstance(target, (str, Path)):
            targets: Iterable[str | Path] = [target]
        else:
            targets = target
        for item in targets:
            if isinstance(item, Path):
                self._ignored_files.add(item.resolve())
                continue
            self._ignored_tokens.add(item)
            resolved = self.resolver.try_resolve(item, self.root)
            if resolved is not None:
                self._ignored_files.add(resolved)
        return self

    def require(self, path: Path, *, expose: str) -> "CommonJSBundler":
        """Force ``path`` into the graph and register it under ``expose``."""
        resolved = path.resolve()
        if not resolved.is_file():
            raise ResolutionError(f"Cannot find module '{path}' to expose as '{expose}'")
        if resolved in self._ignored_files:
            raise ResolutionError(f"Module '{path}' is excluded and cannot be exposed as '{expose}'")
        existing = self._exposed.get(expose)
        if existing is not None and existing != resolved:
            raise ResolutionError(f"'{expose}' is already exposed by {existing}")
        self._exposed[expose] = resolved
        return self

    # ------------------------------------------------------------------
    # Output

    def bundle(self) -> Iterator[bytes]:
        """Yield the rendered bundle as UTF-8 chunks, ending with an inline map comment."""
        modules = self._resolve_graph()
        ids = {key: index for index, key in enumerate(sorted(modules), start=1)}
        prelude = self._environment.get_template("prelude.js.j2").module
        source_map = SourceMapBuilder()

        head = str(prelude.head())
        source_map.skip_lines(head.count("\n"))
        yield head.encode("utf-8")

        ordered = sorted(modules.values(), key=lambda module: ids[module.key])
        for position, module in enumerate(ordered):
            deps = {name: ids[key] for name, key in module.deps.items()}
            last = position == len(ordered) - 1
            chunk, lines = _module_body(module)
            source_map.skip_lines(1)
            if module.path is not None and lines:
                index = source_map.add_source(module.path.as_posix(), module.original)
                source_map.map_lines(index, lines)
            opener = str(prelude.module_open(ids[module.key]))
            closer = str(prelude.module_close(json.dumps(deps, sort_keys=True), last))
            source_map.skip_lines(1)
            yield (opener + chunk + closer).encode("utf-8")

        registry = {name: ids[path.as_posix()] for name, path in sorted(self._exposed.items())}
        entries = [ids[self._entry_key()]]
        tail = str(prelude.tail(json.dumps(registry, sort_keys=True), json.dumps(entries)))
        source_map.skip_lines(tail.count("\n"))
        yield tail.encode("utf-8")
        yield (source_map.inline_comment() + "\n").encode("utf-8")

    # ------------------------------------------------------------------
    # Graph resolution

    def _entry_key(self) -> str:
        return self.entry.resolve().as_posix()

    def _resolve_graph(self) -> Dict[str, _Module]:
        entry = self.entry.resolve()
        if not entry.is_file():
            raise ResolutionError(f"Entry point not found: {self.entry}")
        if entry in self._ignored_files:
            raise ResolutionError(f"Entry point {self.entry} is excluded")

        modules: Dict[str, _Module] = {}
        pending: List[Optional[Path]] = [entry, *self._exposed.values()]
        while pending:
            path = pending.pop()
            key = _EMPTY_KEY if path is None else path.as_posix()
            if key in modules:
                continue
            if path is None:
                modules[key] = _Module(key=key, path=None, original="", source="")
                continue
            module = self._load_module(path)
            modules[key] = module
            for name in find_requires(module.source):
                target = self._resolve_dependency(name, path)
                if target is _SKIP:
                    continue
                module.deps[name] = _EMPTY_KEY if target is None else target.as_posix()
                pending.append(target)

        self.logger.debug(
            "Resolved %d modules (%d exposed, %d ignored tokens)",
            len(modules),
            len(self._exposed),
            len(self._ignored_tokens),
        )
        return modules

    def _resolve_dependency(self, name: str, parent: Path) -> object:
        # Path specifiers always resolve from the requiring file; only bare names
        # are redirected to exposed modules.
        exposed = None if name.startswith((".", "/")) else self._exposed.get(name)
        if exposed is not None:
            return exposed
        if name in self._ignored_tokens:
            return _SKIP
        target = self.resolver.resolve(name, parent.parent)
        if target is not None and target in self._ignored_files:
            return _SKIP
        return target

    def _load_module(self, path: Path) -> _Module:
        try:
            original = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ResolutionError(f"Cannot read module {path}: {exc}") from exc
        source = original
        in_node_modules = "node_modules" in path.parts
        for spec in self._transforms:
            if in_node_modules and not spec.global_:
                continue
            if spec.transform.supports(path):
                source = spec.transform.apply(path, source)
        if path.suffix == ".json":
            source = _json_module(path, source)
        else:
            # Stale per-module maps would be taken for the bundle's own; blank them in place.
            source = _SOURCE_MAP_COMMENT_RE.sub("", source)
        return _Module(key=path.as_posix(), path=path, original=original, source=source)


_SKIP = object()
_SOURCE_MAP_COMMENT_RE = re.compile(r"^[ \t]*//[#@][ \t]*sourceMappingURL=[^\n]*$", re.MULTILINE)


def _json_module(path: Path, source: str) -> str:
    body = source.strip()
    try:
        json.loads(body)
    except json.JSONDecodeError as exc:
        raise TransformError(f"{path} is not valid JSON: {exc}") from exc
    return f"module.exports = {body};\n"


def _module_body(module: _Module) -> Tuple[str, int]:
    if not module.source:
        return "", 0
    text = module.source if module.source.endswith("\n") else module.source + "\n"
    return text, text.count("\n")


__all__ = ["CommonJSBundler"]
