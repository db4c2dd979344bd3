"""Error taxonomy for bundle builds."""


class BuildError(Exception):
    """Base class for every failure that aborts a build."""


class ConfigError(BuildError):
    """Raised when .bundlegen.yml or package.json cannot be interpreted."""


class ManifestError(BuildError):
    """Raised when plugin modules collide on an exposed name."""


class ResolutionError(BuildError):
    """Raised when the entry or a required module cannot be found or is excluded."""


class TransformError(BuildError):
    """Raised when a source transform cannot process a module."""


class ArtifactIOError(BuildError, OSError):
    """Raised when the artifact or its map cannot be written or read back."""


class MinifyError(BuildError):
    """Raised when the minifier rejects the bundled artifact."""


__all__ = [
    "ArtifactIOError",
    "BuildError",
    "ConfigError",
    "ManifestError",
    "MinifyError",
    "ResolutionError",
    "TransformError",
]
