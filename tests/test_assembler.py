"""Tests for bundlegen.assembler."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest

from bundlegen.assembler import URL_SHIM_EXPOSE, GraphAssembler
from bundlegen.errors import ResolutionError
from bundlegen.models import EntryDescriptor, ExclusionSet, ModuleManifest, ModuleRef
from tests._fixtures.project_builder import ProjectBuilder


class RecordingBundler:
    def __init__(self, entry: Path, **options: Any) -> None:
        self.entry = entry
        self.options = options
        self.calls: List[Tuple[str, Any, Dict[str, Any]]] = []

    def transform(self, name: str, *, global_: bool = False, **options: Any) -> "RecordingBundler":
        self.calls.append(("transform", name, {"global_": global_, **options}))
        return self

    def ignore(self, target: Any) -> "RecordingBundler":
        self.calls.append(("ignore", target, {}))
        return self

    def require(self, path: Path, *, expose: str) -> "RecordingBundler":
        self.calls.append(("require", path, {"expose": expose}))
        return self

    def bundle(self):
        yield b""


def _manifest(project: ProjectBuilder) -> ModuleManifest:
    audit = ModuleRef(project.path("lighthouse-core/audits/my-audit.js"), "../audits/my-audit")
    gatherer = ModuleRef(
        project.path("lighthouse-core/gather/gatherers/viewport.js"), "../gather/gatherers/viewport"
    )
    return ModuleManifest(audits=(audit,), gatherers=(gatherer,))


def test_assemble_configures_transforms_ignores_and_exposes(project: ProjectBuilder) -> None:
    config = project.config()
    cri = project.path("lighthouse-core/gather/connections/cri.js")
    exclusions = ExclusionSet(modules=frozenset({cri}), tokens=frozenset({"raven", "intl"}))

    bundler = GraphAssembler(config, RecordingBundler).assemble(
        EntryDescriptor(project.path("clients/devtools-entry.js")), exclusions, _manifest(project)
    )

    assert bundler.entry == project.path("clients/devtools-entry.js")
    assert bundler.options["root"] == project.root
    assert bundler.calls[0] == (
        "transform",
        "inline-fs",
        {"global_": True, "root": project.root, "ecma_version": 10},
    )
    assert bundler.calls[1] == ("transform", "package-version", {"global_": False})
    assert bundler.calls[2:5] == [("ignore", "intl", {}), ("ignore", "raven", {}), ("ignore", cri, {})]
    assert bundler.calls[5:] == [
        ("require", project.path("lighthouse-core/audits/my-audit.js"), {"expose": "../audits/my-audit"}),
        (
            "require",
            project.path("lighthouse-core/gather/gatherers/viewport.js"),
            {"expose": "../gather/gatherers/viewport"},
        ),
        ("require", project.path("lighthouse-core/lib/url-shim.js"), {"expose": URL_SHIM_EXPOSE}),
    ]


def test_assemble_refuses_to_expose_excluded_plugins(project: ProjectBuilder) -> None:
    manifest = _manifest(project)
    exclusions = ExclusionSet(modules=frozenset({manifest.audits[0].source_path}))

    with pytest.raises(ResolutionError, match="is excluded"):
        GraphAssembler(project.config(), RecordingBundler).assemble(
            EntryDescriptor(project.path("clients/lightrider-entry.js")), exclusions, manifest
        )


def test_assemble_requires_url_shim(project: ProjectBuilder) -> None:
    project.path("lighthouse-core/lib/url-shim.js").unlink()

    with pytest.raises(ResolutionError, match="URL shim"):
        GraphAssembler(project.config(), RecordingBundler).assemble(
            EntryDescriptor(project.path("clients/lightrider-entry.js")), ExclusionSet(), ModuleManifest()
        )


def test_assemble_with_default_bundler_renders_graph(project: ProjectBuilder) -> None:
    bundler = GraphAssembler(project.config()).assemble(
        EntryDescriptor(project.path("clients/lightrider-entry.js")), ExclusionSet(), _manifest(project)
    )

    output = b"".join(bundler.bundle()).decode("utf-8")

    assert '"../audits/my-audit"' in output
    assert '"../gather/gatherers/viewport"' in output
