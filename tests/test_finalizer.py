"""Tests for bundlegen.finalizer."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from bundlegen.config import MinifierConfig
from bundlegen.errors import ArtifactIOError, MinifyError
from bundlegen.finalizer import Finalizer, MinifyResult, TerserMinifier
from bundlegen.models import ProvenanceFooter
from tests._fixtures.minifiers import StubMinifier

FOOTER = ProvenanceFooter(name="lighthouse", version="5.2.0", commit_hash="abc1234")
STAMP = "// lighthouse, browserified. 5.2.0 (abc1234)\n"


def _write_artifact(tmp_path: Path) -> Path:
    dist = tmp_path / "bundle.js"
    dist.write_text("a();\n\n// comment\nb();\n//# sourceMappingURL=bundle.js.map\n\n" + STAMP, encoding="utf-8")
    (tmp_path / "bundle.js.map").write_text(
        json.dumps({"version": 3, "sources": ["src/a.js"], "mappings": ";AAAA"}), encoding="utf-8"
    )
    return dist


def test_minify_in_place_single_stamp(tmp_path: Path) -> None:
    dist = _write_artifact(tmp_path)
    minifier = StubMinifier()

    artifact = Finalizer(minifier, FOOTER, single_stamp=True).minify_in_place(dist)

    content = dist.read_text(encoding="utf-8")
    assert content == "a();\nb();\n//# sourceMappingURL=bundle.js.map\n" + STAMP
    assert content.count(STAMP) == 1
    assert minifier.calls[0]["url"] == "bundle.js.map"
    assert minifier.calls[0]["map"]["sources"] == ["src/a.js"]
    source_map = json.loads(artifact.map_path.read_text(encoding="utf-8"))
    assert source_map["sources"] == ["src/a.js"]


def test_minify_in_place_stamps_footer_twice_by_default(tmp_path: Path) -> None:
    dist = _write_artifact(tmp_path)

    Finalizer(StubMinifier(), FOOTER).minify_in_place(dist)

    content = dist.read_text(encoding="utf-8")
    assert content == "a();\nb();\n//# sourceMappingURL=bundle.js.map" + STAMP + "\n" + STAMP
    assert content.count(STAMP) == 2


def test_minify_error_leaves_artifact_untouched(tmp_path: Path) -> None:
    dist = _write_artifact(tmp_path)
    before = dist.read_text(encoding="utf-8")
    map_before = (tmp_path / "bundle.js.map").read_text(encoding="utf-8")

    with pytest.raises(MinifyError, match="Unexpected token"):
        Finalizer(StubMinifier(error="Unexpected token"), FOOTER).minify_in_place(dist)

    assert dist.read_text(encoding="utf-8") == before
    assert (tmp_path / "bundle.js.map").read_text(encoding="utf-8") == map_before


def test_minify_requires_result_map(tmp_path: Path) -> None:
    dist = _write_artifact(tmp_path)

    class NoMap:
        def minify(self, code, input_map, *, url):
            return MinifyResult(code="x")

    with pytest.raises(MinifyError, match="no source map"):
        Finalizer(NoMap(), FOOTER).minify_in_place(dist)


def test_minify_reports_missing_artifact(tmp_path: Path) -> None:
    with pytest.raises(ArtifactIOError):
        Finalizer(StubMinifier(), FOOTER).minify_in_place(tmp_path / "missing.js")


def test_terser_minifier_sends_request_to_node(tmp_path: Path) -> None:
    calls = []

    def runner(args, stdin):
        calls.append((list(args), json.loads(stdin)))
        return json.dumps({"code": "a();", "map": json.dumps({"version": 3, "sources": ["a.js"]})})

    minifier = TerserMinifier(MinifierConfig(executable="nodejs"), cwd=tmp_path, runner=runner)
    result = minifier.minify("a ( ) ;", {"version": 3}, url="bundle.js.map")

    assert result.error is None
    assert result.code == "a();"
    assert result.map == {"version": 3, "sources": ["a.js"]}
    args, request = calls[0]
    assert args[:2] == ["nodejs", "-e"]
    assert "terser" in args[2]
    assert request == {"code": "a ( ) ;", "map": {"version": 3}, "url": "bundle.js.map"}


def test_terser_minifier_reports_error_payload() -> None:
    minifier = TerserMinifier(runner=lambda args, stdin: json.dumps({"error": "Unexpected token"}))

    result = minifier.minify("a(", {}, url="x.map")

    assert result.error == "Unexpected token"


def test_terser_minifier_reports_runner_failures() -> None:
    def runner(args, stdin):
        raise RuntimeError("Unable to locate 'node'")

    assert TerserMinifier(runner=runner).minify("", {}, url="x.map").error == "Unable to locate 'node'"
    assert TerserMinifier(runner=lambda a, s: "not json").minify("", {}, url="x.map").error


def test_terser_cli_runner_wraps_subprocess_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(*args, **kwargs):
        raise subprocess.CalledProcessError(1, args[0], stderr="Cannot find module 'terser'\n")

    monkeypatch.setattr(subprocess, "run", fake_run)

    result = TerserMinifier().minify("a();", {}, url="x.map")

    assert result.error == "Minifier failed with exit code 1: Cannot find module 'terser'"
