"""Bundle a modular application into one minified browser script."""

from .config import BuildSettings, BundleConfig, load_config, resolve_settings
from .errors import BuildError
from .pipeline import BuildPipeline, build
from .vcs import current_commit_hash

__all__ = [
    "BuildError",
    "BuildPipeline",
    "BuildSettings",
    "BundleConfig",
    "build",
    "current_commit_hash",
    "load_config",
    "resolve_settings",
]
