"""End-to-end tests for bundlegen.pipeline."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from bundlegen.errors import ManifestError, ResolutionError
from bundlegen.models import BuildRequest
from bundlegen.pipeline import BuildPipeline, build
from tests._fixtures.minifiers import StubMinifier
from tests._fixtures.project_builder import ProjectBuilder

STAMP = "// lighthouse, browserified. 5.2.0 (abc1234)\n"


def _build(project: ProjectBuilder, entry: str, dist: str = "dist/bundle.js", minifier=None):
    return build(
        entry,
        dist,
        project.settings(),
        cwd=project.root,
        minifier=minifier or StubMinifier(),
    )


def test_devtools_build_writes_script_map_and_footer(project: ProjectBuilder) -> None:
    minifier = StubMinifier()

    artifact = _build(project, "clients/devtools-entry.js", "dist/lighthouse-dt-bundle.js", minifier)

    assert artifact.script_path == project.path("dist/lighthouse-dt-bundle.js")
    content = artifact.script_path.read_text(encoding="utf-8")
    assert content.endswith("//# sourceMappingURL=lighthouse-dt-bundle.js.map" + STAMP + "\n" + STAMP)
    assert content.count(STAMP) == 2

    unminified = minifier.calls[0]["code"]
    assert "CRI_TRANSPORT" not in unminified
    assert "REPORT_ASSETS" not in unminified
    assert "LOCALE_EN" not in unminified
    assert '"../audits/my-audit"' in unminified
    assert '"../gather/gatherers/viewport"' in unminified
    assert unminified.endswith("\n" + STAMP)

    source_map = json.loads(artifact.map_path.read_text(encoding="utf-8"))
    assert "../lighthouse-core/runner.js" in source_map["sources"]
    assert "../clients/devtools-entry.js" in source_map["sources"]


def test_extension_build_keeps_report_assets(project: ProjectBuilder) -> None:
    minifier = StubMinifier()

    _build(project, "clients/extension-entry.js", minifier=minifier)

    unminified = minifier.calls[0]["code"]
    assert "REPORT_ASSETS" in unminified
    assert "LOCALE_EN" not in unminified
    assert "CRI_TRANSPORT" not in unminified


def test_untagged_build_keeps_locales(project: ProjectBuilder) -> None:
    minifier = StubMinifier()

    _build(project, "clients/lightrider-entry.js", minifier=minifier)

    unminified = minifier.calls[0]["code"]
    assert "LOCALE_EN" in unminified
    assert "REPORT_ASSETS" in unminified
    assert "CRI_TRANSPORT" not in unminified


def test_rebuild_is_byte_identical(project: ProjectBuilder) -> None:
    first = _build(project, "clients/devtools-entry.js")
    first_script = first.script_path.read_bytes()
    first_map = first.map_path.read_bytes()

    second = _build(project, "clients/devtools-entry.js")

    assert second.script_path.read_bytes() == first_script
    assert second.map_path.read_bytes() == first_map


def test_missing_entry_fails_without_writing(project: ProjectBuilder) -> None:
    with pytest.raises(ResolutionError, match="Entry point not found"):
        _build(project, "clients/nope-entry.js")

    assert not project.path("dist/bundle.js").exists()


def test_manifest_collision_aborts_build(project: ProjectBuilder) -> None:
    class CollidingRegistry:
        def list_audit_modules(self):
            return ["my-audit", "my-audit.js"]

        def list_gatherer_modules(self):
            return []

    project.write({"lighthouse-core/audits/my-audit": "module.exports = 2;\n"})
    pipeline = BuildPipeline(project.settings(), registry=CollidingRegistry(), minifier=StubMinifier())
    request = BuildRequest.from_args("clients/devtools-entry.js", "dist/bundle.js", cwd=project.root)

    with pytest.raises(ManifestError):
        pipeline.run(request)

    assert not project.path("dist/bundle.js").exists()


def test_excluded_plugin_aborts_build(project: ProjectBuilder) -> None:
    class TransportRegistry:
        def list_audit_modules(self):
            return []

        def list_gatherer_modules(self):
            return ["../connections/cri.js"]

    pipeline = BuildPipeline(project.settings(), registry=TransportRegistry(), minifier=StubMinifier())
    request = BuildRequest.from_args("clients/devtools-entry.js", "dist/bundle.js", cwd=project.root)

    with pytest.raises(ResolutionError, match="is excluded"):
        pipeline.run(request)


def test_pipeline_defaults_to_terser(project: ProjectBuilder) -> None:
    pipeline = BuildPipeline(project.settings())

    assert type(pipeline.finalizer.minifier).__name__ == "TerserMinifier"
    assert pipeline.finalizer.minifier.cwd == project.root
    assert isinstance(pipeline.settings.root, Path)


def test_single_stamp_footer_is_opt_in(project: ProjectBuilder) -> None:
    project.write({".bundlegen.yml": "footer:\n  single_stamp: true\n"})

    artifact = _build(project, "clients/devtools-entry.js")

    content = artifact.script_path.read_text(encoding="utf-8")
    assert content.endswith("//# sourceMappingURL=bundle.js.map\n" + STAMP)
    assert content.count(STAMP) == 1
