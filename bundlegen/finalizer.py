"""Minify a written artifact in place, chaining its existing source map."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

from .config import MinifierConfig
from .errors import ArtifactIOError, MinifyError
from .logging import get_logger
from .models import Artifact, ProvenanceFooter

# Reads {code, map, url} as JSON on stdin and answers {code, map} or {error}.
_TERSER_SCRIPT = """
const terser = require('terser');
let input = '';
process.stdin.setEncoding('utf8');
process.stdin.on('data', chunk => { input += chunk; });
process.stdin.on('end', async () => {
  const request = JSON.parse(input);
  try {
    const result = await terser.minify(request.code, {
      sourceMap: {content: request.map, url: request.url},
    });
    if (result.error) throw result.error;
    process.stdout.write(JSON.stringify({code: result.code, map: result.map}));
  } catch (err) {
    process.stdout.write(JSON.stringify({error: String((err && err.message) || err)}));
  }
});
"""


@dataclass
class MinifyResult:
    """Outcome of a minification: code and map, or an error message."""

    code: str = ""
    map: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class Minifier(Protocol):
    def minify(self, code: str, input_map: Dict[str, Any], *, url: str) -> MinifyResult:
        ...


MinifyRunner = Callable[[Sequence[str], str], str]


class TerserMinifier:
    """Runs terser through node, feeding it the bundle and its current map."""

    def __init__(
        self,
        config: MinifierConfig | None = None,
        *,
        cwd: Path | None = None,
        runner: MinifyRunner | None = None,
    ) -> None:
        self.config = config or MinifierConfig()
        self.cwd = cwd
        self._runner = runner or self._cli_runner

    def minify(self, code: str, input_map: Dict[str, Any], *, url: str) -> MinifyResult:
        request = json.dumps({"code": code, "map": input_map, "url": url})
        args = [self.config.executable, "-e", _TERSER_SCRIPT]
        try:
            output = self._runner(args, request)
        except RuntimeError as exc:
            return MinifyResult(error=str(exc))
        try:
            payload = json.loads(output)
        except json.JSONDecodeError as exc:
            return MinifyResult(error=f"Unreadable minifier output: {exc}")
        if not isinstance(payload, dict):
            return MinifyResult(error="Minifier returned a non-object payload")
        if payload.get("error"):
            return MinifyResult(error=str(payload["error"]))
        source_map = payload.get("map")
        if isinstance(source_map, str):
            try:
                source_map = json.loads(source_map)
            except json.JSONDecodeError as exc:
                return MinifyResult(error=f"Unreadable source map from minifier: {exc}")
        return MinifyResult(code=str(payload.get("code") or ""), map=source_map)

    def _cli_runner(self, args: Sequence[str], stdin: str) -> str:
        try:
            completed = subprocess.run(
                list(args),
                input=stdin,
                check=True,
                capture_output=True,
                text=True,
                cwd=str(self.cwd) if self.cwd else None,
                timeout=self.config.timeout,
            )
        except FileNotFoundError as exc:
            raise RuntimeError(
                f"Unable to locate '{args[0]}'. Install node and terser or configure minifier.executable."
            ) from exc
        except subprocess.CalledProcessError as exc:
            raise RuntimeError(
                f"Minifier failed with exit code {exc.returncode}: {exc.stderr.strip()}"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise RuntimeError(f"Minifier timed out after {exc.timeout} seconds") from exc
        return completed.stdout


class Finalizer:
    """Overwrites an artifact pair with its minified form and a fresh footer."""

    def __init__(
        self,
        minifier: Minifier,
        footer: ProvenanceFooter,
        *,
        single_stamp: bool = False,
    ) -> None:
        self.minifier = minifier
        self.footer = footer
        self.single_stamp = single_stamp
        self.logger = get_logger("finalizer")

    def minify_in_place(self, dist_path: Path) -> Artifact:
        artifact = Artifact.for_dist(dist_path)
        try:
            code = dist_path.read_text(encoding="utf-8")
            input_map = json.loads(artifact.map_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ArtifactIOError(f"Cannot read artifact {dist_path} for minification: {exc}") from exc

        result = self.minifier.minify(code, input_map, url=artifact.map_path.name)
        # Nothing is overwritten unless minification succeeded.
        if result.error is not None:
            raise MinifyError(f"Minification of {dist_path} failed: {result.error}")
        if result.map is None:
            raise MinifyError(f"Minifier returned no source map for {dist_path}")

        stamp = self.footer.render()
        if self.single_stamp:
            minified = result.code + "\n" + stamp
        else:
            minified = result.code + stamp + "\n" + stamp
        try:
            dist_path.write_text(minified, encoding="utf-8")
            artifact.map_path.write_text(json.dumps(result.map), encoding="utf-8")
        except OSError as exc:
            raise ArtifactIOError(f"Cannot overwrite {dist_path}: {exc}") from exc

        self.logger.info(
            "Minified %s: %d -> %d bytes", dist_path.name, len(code), len(minified)
        )
        return artifact


__all__ = ["Finalizer", "MinifyResult", "Minifier", "TerserMinifier"]
