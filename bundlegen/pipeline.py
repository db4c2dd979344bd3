"""Pipeline driver: assemble, write, then minify one bundle."""

from __future__ import annotations

from pathlib import Path

from .assembler import BundlerFactory, GraphAssembler
from .config import BuildSettings
from .exclusions import ExclusionPolicy
from .finalizer import Finalizer, Minifier, TerserMinifier
from .logging import get_logger
from .manifest import ManifestCollector, PluginRegistry
from .models import Artifact, BuildRequest, EntryDescriptor, ProvenanceFooter
from .writer import ArtifactWriter


class BuildPipeline:
    """Runs the linear build for one (entry, destination) pair.

    Stages run strictly in order; any failure propagates untouched and the
    destination must then be treated as invalid.
    """

    def __init__(
        self,
        settings: BuildSettings,
        *,
        registry: PluginRegistry | None = None,
        bundler_factory: BundlerFactory | None = None,
        minifier: Minifier | None = None,
    ) -> None:
        self.settings = settings
        config = settings.config
        self.footer = ProvenanceFooter(
            name=settings.name, version=settings.version, commit_hash=settings.commit_hash
        )
        self.collector = ManifestCollector(config, registry)
        self.policy = ExclusionPolicy(config)
        self.assembler = GraphAssembler(config, bundler_factory)
        self.writer = ArtifactWriter(self.footer)
        self.finalizer = Finalizer(
            minifier or TerserMinifier(config.minifier, cwd=settings.root),
            self.footer,
            single_stamp=config.footer.single_stamp,
        )
        self.logger = get_logger("pipeline")

    def run(self, request: BuildRequest) -> Artifact:
        entry = EntryDescriptor(request.entry_path)
        self.logger.info("Bundling %s -> %s", entry.path, request.dist_path)

        manifest = self.collector.collect()
        exclusions = self.policy.compute(entry, manifest.locales)
        graph = self.assembler.assemble(entry, exclusions, manifest)

        self.writer.write(graph, request.dist_path)
        return self.finalizer.minify_in_place(request.dist_path)


def build(
    entry_path: str | Path,
    dist_path: str | Path,
    settings: BuildSettings,
    *,
    cwd: Path | None = None,
    minifier: Minifier | None = None,
) -> Artifact:
    """Bundle ``entry_path`` into a minified, footer-stamped ``dist_path`` and map."""
    request = BuildRequest.from_args(entry_path, dist_path, cwd=cwd)
    return BuildPipeline(settings, minifier=minifier).run(request)


__all__ = ["BuildPipeline", "build"]
