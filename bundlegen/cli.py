"""CLI entrypoint for bundlegen builds."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import load_config, resolve_settings
from .errors import BuildError
from .logging import configure_logging
from .pipeline import build
from .vcs import current_commit_hash


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bundlegen",
        description="Bundle an entry point into a minified browser script with a source map.",
    )
    parser.add_argument("entry", help="Entry module, relative to the current directory.")
    parser.add_argument("dist", help="Output script path, relative to the current directory.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Increase log verbosity for troubleshooting.",
    )
    parser.add_argument(
        "--config",
        default=".",
        help="Path to .bundlegen.yml or the project root containing it (defaults to current directory).",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write detailed logs to this file.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for bundlegen."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        verbose=bool(args.verbose),
        log_file=Path(args.log_file) if args.log_file else None,
    )

    cwd = Path.cwd()
    try:
        config = load_config(Path(args.config))
        settings = resolve_settings(config, commit_hash=current_commit_hash(config.root))
        artifact = build(args.entry, args.dist, settings, cwd=cwd)
    except BuildError as exc:
        parser.exit(1, f"bundlegen failed: {exc}\nRun with --verbose for more details.\n")
    print(f"Bundle written to {_relativize(artifact.script_path)}")


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
