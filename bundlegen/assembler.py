"""Configure the module bundler for one entry point."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Mapping, Optional

from .config import BundleConfig
from .errors import ResolutionError
from .logging import get_logger
from .models import EntryDescriptor, ExclusionSet, ModuleManifest
from .resolver import CommonJSBundler, ModuleBundler

# robots-parser does `require('url').URL`, so the shim is exposed under the builtin's name.
URL_SHIM_EXPOSE = "url"

BundlerFactory = Callable[..., ModuleBundler]


class GraphAssembler:
    """Builds the bundle graph handle: transforms, exclusions and exposed plugins."""

    def __init__(self, config: BundleConfig, bundler_factory: BundlerFactory | None = None) -> None:
        self.config = config
        self._factory = bundler_factory or CommonJSBundler
        self.logger = get_logger("assembler")

    def assemble(
        self,
        entry: EntryDescriptor,
        exclusions: ExclusionSet,
        manifest: ModuleManifest,
    ) -> ModuleBundler:
        builtins: Mapping[str, Optional[str]] = self.config.builtins
        bundler = self._factory(entry.path, root=self.config.root, builtins=builtins)

        # Inline fs.readFileSync etc. so the bundle needs no filesystem.
        bundler.transform(
            "inline-fs", global_=True, root=self.config.root, ecma_version=self.config.ecma_version
        )
        # Strip everything out of package.json except the version.
        bundler.transform("package-version")

        for token in sorted(exclusions.tokens):
            bundler.ignore(token)
        for module in sorted(exclusions.modules):
            bundler.ignore(module)

        exposed = 0
        for ref in manifest.plugins():
            if ref.source_path in exclusions:
                raise ResolutionError(
                    f"Plugin {ref.source_path} is excluded and cannot be exposed as '{ref.exposed_name}'"
                )
            bundler.require(ref.source_path, expose=ref.exposed_name)
            exposed += 1

        bundler.require(self._url_shim(), expose=URL_SHIM_EXPOSE)
        self.logger.debug("Exposed %d plugin modules for %s", exposed, entry.path.name)
        return bundler

    def _url_shim(self) -> Path:
        path = self.config.source_file(self.config.modules.url_shim).resolve()
        if not path.is_file():
            raise ResolutionError(f"URL shim not found: {path}")
        return path


__all__ = ["BundlerFactory", "GraphAssembler", "URL_SHIM_EXPOSE"]
