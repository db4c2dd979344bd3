"""Configuration loading for bundlegen (.bundlegen.yml)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .errors import ConfigError

CONFIG_FILENAME = ".bundlegen.yml"

DEFAULT_PLUGIN_EXCLUDES = (
    "audit.js",
    "gatherer.js",
    "violation-audit.js",
    "multi-check-audit.js",
    "axe-audit.js",
    "byte-efficiency-audit.js",
    "manual-audit.js",
)

# Node builtins and the browser shim each resolves to. ``None`` means an empty module.
DEFAULT_BUILTINS: Dict[str, Optional[str]] = {
    "assert": "assert",
    "buffer": "buffer",
    "child_process": None,
    "cluster": None,
    "constants": "constants-browserify",
    "crypto": "crypto-browserify",
    "dgram": None,
    "dns": None,
    "events": "events",
    "fs": None,
    "http": "stream-http",
    "https": "https-browserify",
    "module": None,
    "net": None,
    "os": "os-browserify/browser.js",
    "path": "path-browserify",
    "process": "process/browser.js",
    "punycode": "punycode",
    "querystring": "querystring-es3",
    "readline": None,
    "repl": None,
    "stream": "stream-browserify",
    "string_decoder": "string_decoder",
    "timers": "timers-browserify",
    "tls": None,
    "tty": "tty-browserify",
    "url": "url",
    "util": "util",
    "vm": "vm-browserify",
    "zlib": "browserify-zlib",
}


@dataclass
class ModulePaths:
    """Well-known modules the exclusion policy and assembler refer to."""

    transport: str = "gather/connections/cri.js"
    report_assets: str = "report/html/html-report-assets.js"
    url_shim: str = "lib/url-shim.js"


@dataclass
class MinifierConfig:
    """Settings for the terser-backed minifier."""

    executable: str = "node"
    timeout: Optional[float] = None


@dataclass
class FooterConfig:
    """Provenance footer behaviour."""

    single_stamp: bool = False


@dataclass
class BundleConfig:
    """Represents the settings defined in .bundlegen.yml."""

    root: Path
    name: Optional[str] = None
    source_root: str = "lighthouse-core"
    audits_dir: str = "audits"
    gatherers_dir: str = "gather/gatherers"
    driver_dir: str = "gather"
    locales_dir: str = "lib/i18n/locales"
    plugin_excludes: List[str] = field(default_factory=lambda: list(DEFAULT_PLUGIN_EXCLUDES))
    modules: ModulePaths = field(default_factory=ModulePaths)
    ignore: List[str] = field(default_factory=list)
    builtins: Dict[str, Optional[str]] = field(default_factory=lambda: dict(DEFAULT_BUILTINS))
    ecma_version: int = 10
    minifier: MinifierConfig = field(default_factory=MinifierConfig)
    footer: FooterConfig = field(default_factory=FooterConfig)

    @property
    def source_dir(self) -> Path:
        return self.root / self.source_root

    def source_file(self, relative: str) -> Path:
        return self.source_dir / relative


@dataclass(frozen=True)
class BuildSettings:
    """Resolved configuration for one build, with provenance injected."""

    config: BundleConfig
    name: str
    version: str
    commit_hash: str

    @property
    def root(self) -> Path:
        return self.config.root


def load_config(config_path: Path) -> BundleConfig:
    """Load configuration from disk."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return BundleConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    config = BundleConfig(root=root)
    config.name = _as_str(data.get("name"))
    for key in ("source_root", "audits_dir", "gatherers_dir", "driver_dir", "locales_dir"):
        value = _as_str(data.get(key))
        if value:
            setattr(config, key, value.strip("/"))

    if "plugin_excludes" in data:
        config.plugin_excludes = _as_str_list(data.get("plugin_excludes"))

    modules_data = _as_dict(data.get("modules"))
    for key in ("transport", "report_assets", "url_shim"):
        value = _as_str(modules_data.get(key))
        if value:
            setattr(config.modules, key, value)

    config.ignore = _as_str_list(data.get("ignore"))

    builtins_data = data.get("builtins")
    if builtins_data is not None:
        if not isinstance(builtins_data, dict):
            raise ConfigError("builtins must be a mapping of module name to shim")
        for name, shim in builtins_data.items():
            config.builtins[str(name)] = _as_str(shim)

    ecma_version = _as_int(data.get("ecma_version"))
    if ecma_version is not None:
        config.ecma_version = ecma_version

    minifier_data = _as_dict(data.get("minifier"))
    if minifier_data:
        config.minifier = MinifierConfig(
            executable=_as_str(minifier_data.get("executable")) or "node",
            timeout=_as_float(minifier_data.get("timeout")),
        )

    footer_data = _as_dict(data.get("footer"))
    if footer_data:
        config.footer = FooterConfig(
            single_stamp=_as_bool(footer_data.get("single_stamp")) or False,
        )

    return config


def resolve_settings(config: BundleConfig, *, commit_hash: str) -> BuildSettings:
    """Combine configuration with package metadata and the injected commit hash."""
    package = read_package_json(config.root)
    version = _as_str(package.get("version"))
    if not version:
        raise ConfigError(f"package.json in {config.root} does not declare a version")
    name = config.name or _as_str(package.get("name")) or config.root.name
    return BuildSettings(config=config, name=name, version=version, commit_hash=commit_hash)


def read_package_json(root: Path) -> Dict[str, Any]:
    """Return the parsed package.json at ``root``."""
    path = root / "package.json"
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"package.json not found in {root}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return payload


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []
