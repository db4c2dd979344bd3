"""Named source transforms applied while the module graph is resolved."""

from __future__ import annotations

import base64
import json
import posixpath
import re
from abc import ABC, abstractmethod
from importlib import metadata
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..errors import TransformError
from .requires import in_string, scan

_ENTRY_POINT_GROUP = "bundlegen.transforms"

TransformFactory = Callable[..., "Transform"]


class Transform(ABC):
    """Contract for source-to-source rewrites run on every bundled module."""

    @abstractmethod
    def supports(self, path: Path) -> bool:
        """Return True when this transform should run for the module at ``path``."""

    @abstractmethod
    def apply(self, path: Path, source: str) -> str:
        """Return the rewritten source."""


class PackageVersionTransform(Transform):
    """Reduces package.json modules to their version field."""

    def supports(self, path: Path) -> bool:
        return path.name == "package.json"

    def apply(self, path: Path, source: str) -> str:
        try:
            payload = json.loads(source)
        except json.JSONDecodeError as exc:
            raise TransformError(f"Invalid JSON in {path}: {exc}") from exc
        version = payload.get("version") if isinstance(payload, dict) else None
        return json.dumps({"version": version})


_FS_BINDING_RE = re.compile(
    r"""(?:\bconst|\blet|\bvar)\s+(?P<name>[A-Za-z_$][\w$]*)\s*=\s*require\s*\(\s*['"]fs['"]\s*\)"""
)
_UTF8_NAMES = {"utf8", "utf-8"}


class InlineFileReadsTransform(Transform):
    """Replaces ``fs.readFileSync``/``fs.readdirSync`` on static paths with literals.

    A path is static when it is built only from string literals, ``__dirname``,
    ``__filename``, ``+`` and ``path.join``/``path.resolve``. Calls on dynamic
    paths are left alone. Replacements keep the module's line count so source
    maps still line up.
    """

    def __init__(self, *, root: Path | None = None, ecma_version: int = 10) -> None:
        self.root = root
        self.ecma_version = ecma_version

    def supports(self, path: Path) -> bool:
        return path.suffix == ".js"

    def apply(self, path: Path, source: str) -> str:
        bindings = {match.group("name") for match in _FS_BINDING_RE.finditer(source)}
        if not bindings:
            return source

        masked, spans = scan(source)
        names = "|".join(re.escape(name) for name in sorted(bindings))
        call_re = re.compile(rf"(?<![\w$.])(?:{names})\s*\.\s*(?P<method>readFileSync|readdirSync)\s*\(")

        pieces: List[str] = []
        cursor = 0
        for match in call_re.finditer(masked):
            if match.start() < cursor or in_string(match.start(), spans):
                continue
            close = _matching_paren(masked, match.end() - 1)
            if close is None:
                raise TransformError(f"Unbalanced call to {match.group('method')} in {path}")
            args = _split_args(masked[match.end():close])
            replacement = self._inline(path, match.group("method"), args)
            if replacement is None:
                continue
            original = source[match.start():close + 1]
            pieces.append(source[cursor:match.start()])
            pieces.append(replacement + "\n" * original.count("\n"))
            cursor = close + 1
        pieces.append(source[cursor:])
        return "".join(pieces)

    def _inline(self, path: Path, method: str, args: List[str]) -> Optional[str]:
        if not args:
            return None
        evaluator = _StaticEvaluator(path, self.ecma_version)
        target = evaluator.evaluate(args[0])
        if target is None:
            return None
        file_path = Path(target)
        if not file_path.is_absolute():
            file_path = (self.root or path.parent) / file_path

        if method == "readdirSync":
            if not file_path.is_dir():
                raise TransformError(f"{path}: cannot inline readdirSync of missing {file_path}")
            try:
                return json.dumps(sorted(child.name for child in file_path.iterdir()))
            except OSError as exc:
                raise TransformError(f"{path}: cannot list {file_path}: {exc}") from exc

        if not file_path.is_file():
            raise TransformError(f"{path}: cannot inline readFileSync of missing {file_path}")
        encoding = _encoding_arg(args[1:], evaluator)
        if len(args) > 1 and encoding is None:
            return None
        if encoding is not None and encoding.lower() not in _UTF8_NAMES:
            raise TransformError(f"{path}: unsupported encoding '{encoding}' for {file_path}")
        try:
            if encoding is None:
                payload = base64.b64encode(file_path.read_bytes()).decode("ascii")
                return f"Buffer.from({json.dumps(payload)}, \"base64\")"
            return json.dumps(file_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            raise TransformError(f"{path}: cannot read {file_path}: {exc}") from exc


def _matching_paren(text: str, open_index: int) -> Optional[int]:
    depth = 0
    index = open_index
    quote: Optional[str] = None
    while index < len(text):
        char = text[index]
        if quote:
            if char == "\\":
                index += 2
                continue
            if char == quote:
                quote = None
        elif char in "'\"`":
            quote = char
        elif char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return None


def _split_args(text: str) -> List[str]:
    args: List[str] = []
    depth = 0
    quote: Optional[str] = None
    current: List[str] = []
    index = 0
    while index < len(text):
        char = text[index]
        if quote:
            current.append(char)
            if char == "\\" and index + 1 < len(text):
                current.append(text[index + 1])
                index += 2
                continue
            if char == quote:
                quote = None
        elif char in "'\"`":
            quote = char
            current.append(char)
        elif char in "([{":
            depth += 1
            current.append(char)
        elif char in ")]}":
            depth -= 1
            current.append(char)
        elif char == "," and depth == 0:
            args.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        index += 1
    tail = "".join(current).strip()
    if tail:
        args.append(tail)
    return args


def _encoding_arg(args: List[str], evaluator: "_StaticEvaluator") -> Optional[str]:
    """Return the static encoding argument, or None when absent or dynamic."""
    if not args:
        return None
    option = args[0].strip()
    if option.startswith("{"):
        match = re.search(r"""encoding\s*:\s*(['"])(?P<value>[^'"]+)\1""", option)
        return match.group("value") if match else None
    return evaluator.evaluate(option)


_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<string>'(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*")
        |(?P<template>`[^`$\\]*`)
        |(?P<call>path\s*\.\s*(?:join|resolve))
        |(?P<ident>[A-Za-z_$][\w$]*)
        |(?P<punct>[+(),])
    )
    """,
    re.VERBOSE,
)


class _StaticEvaluator:
    """Evaluates the small expression language allowed in static file paths."""

    def __init__(self, path: Path, ecma_version: int) -> None:
        self.path = path
        self.ecma_version = ecma_version
        self._tokens: List[Tuple[str, str]] = []
        self._index = 0

    def evaluate(self, expression: str) -> Optional[str]:
        tokens = self._tokenize(expression)
        if tokens is None:
            return None
        self._tokens = tokens
        self._index = 0
        value = self._sum()
        if value is None or self._index != len(self._tokens):
            return None
        return value

    def _tokenize(self, expression: str) -> Optional[List[Tuple[str, str]]]:
        tokens: List[Tuple[str, str]] = []
        position = 0
        expression = expression.strip()
        while position < len(expression):
            match = _TOKEN_RE.match(expression, position)
            if match is None or match.end() == position:
                return None
            kind = match.lastgroup or ""
            tokens.append((kind, match.group(kind)))
            position = match.end()
        return tokens

    def _peek(self) -> Optional[Tuple[str, str]]:
        return self._tokens[self._index] if self._index < len(self._tokens) else None

    def _take(self, value: str) -> bool:
        token = self._peek()
        if token is not None and token[0] == "punct" and token[1] == value:
            self._index += 1
            return True
        return False

    def _sum(self) -> Optional[str]:
        left = self._atom()
        while left is not None and self._take("+"):
            right = self._atom()
            if right is None:
                return None
            left += right
        return left

    def _atom(self) -> Optional[str]:
        token = self._peek()
        if token is None:
            return None
        kind, text = token
        self._index += 1
        if kind == "string":
            return _decode_string(text)
        if kind == "template":
            if self.ecma_version < 6:
                raise TransformError(
                    f"{self.path}: template literals need ecma_version >= 6 (got {self.ecma_version})"
                )
            return text[1:-1]
        if kind == "ident":
            if text == "__dirname":
                return self.path.parent.as_posix()
            if text == "__filename":
                return self.path.as_posix()
            return None
        if kind == "call":
            if not self._take("("):
                return None
            segments = self._arguments()
            if segments is None:
                return None
            if text.endswith("join"):
                return posixpath.normpath("/".join(segments)) if segments else "."
            return posixpath.normpath(posixpath.join(*segments)) if segments else None
        if kind == "punct" and text == "(":
            value = self._sum()
            return value if self._take(")") else None
        return None

    def _arguments(self) -> Optional[List[str]]:
        segments: List[str] = []
        if self._take(")"):
            return segments
        while True:
            value = self._sum()
            if value is None:
                return None
            segments.append(value)
            if self._take(")"):
                return segments
            if not self._take(","):
                return None


_ESCAPE_RE = re.compile(
    r"""\\(?:
        x(?P<hex>[0-9A-Fa-f]{2})
        |u\{(?P<code>[0-9A-Fa-f]+)\}
        |u(?P<unit>[0-9A-Fa-f]{4})
        |(?P<continuation>\r\n|[\n\r\u2028\u2029])
        |(?P<char>.)
    )""",
    re.DOTALL | re.VERBOSE,
)
_SIMPLE_ESCAPES = {"b": "\b", "f": "\f", "n": "\n", "r": "\r", "t": "\t", "v": "\v", "0": "\0"}


def _decode_string(literal: str) -> Optional[str]:
    """Decode a quoted JS string literal; ``None`` when it holds a malformed escape."""
    body = literal[1:-1]
    pieces: List[str] = []
    cursor = 0
    for match in _ESCAPE_RE.finditer(body):
        decoded = _decode_escape(match)
        if decoded is None:
            return None
        pieces.append(body[cursor:match.start()])
        pieces.append(decoded)
        cursor = match.end()
    pieces.append(body[cursor:])
    return "".join(pieces)


def _decode_escape(match: re.Match[str]) -> Optional[str]:
    if match.group("hex") is not None:
        return chr(int(match.group("hex"), 16))
    if match.group("code") is not None:
        value = int(match.group("code"), 16)
        return chr(value) if value <= 0x10FFFF else None
    if match.group("unit") is not None:
        return chr(int(match.group("unit"), 16))
    if match.group("continuation") is not None:
        return ""
    char = match.group("char")
    # Truncated \x/\u forms and legacy octal escapes.
    if char in "xu123456789":
        return None
    if char == "0" and match.string[match.end():match.end() + 1].isdigit():
        return None
    return _SIMPLE_ESCAPES.get(char, char)


_BUILTIN_TRANSFORMS: Dict[str, TransformFactory] = {
    "inline-fs": InlineFileReadsTransform,
    "package-version": PackageVersionTransform,
}


def discover_transforms() -> Dict[str, TransformFactory]:
    """Return transform factories by name, built-ins first, then entry points."""
    factories: Dict[str, TransformFactory] = dict(_BUILTIN_TRANSFORMS)
    for entry in _iter_entry_points():
        if entry.name in factories:
            continue
        try:
            loaded = entry.load()
        except Exception as exc:  # pragma: no cover - depends on installed plugins
            raise TransformError(f"Failed to load transform entry point '{entry.name}': {exc}") from exc
        if not callable(loaded):
            raise TransformError(f"Transform entry point '{entry.name}' is not callable")
        factories[entry.name] = loaded
    return factories


def create_transform(name: str, factories: Dict[str, TransformFactory], **options: object) -> Transform:
    factory = factories.get(name)
    if factory is None:
        known = ", ".join(sorted(factories))
        raise TransformError(f"Unknown transform '{name}' (known: {known})")
    instance = factory(**options)
    if not isinstance(instance, Transform):
        raise TransformError(f"Transform factory for '{name}' did not return a Transform instance")
    return instance


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points(group=_ENTRY_POINT_GROUP)


__all__ = [
    "InlineFileReadsTransform",
    "PackageVersionTransform",
    "Transform",
    "TransformFactory",
    "create_transform",
    "discover_transforms",
]
