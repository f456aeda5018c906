"""CLI entrypoints for figsync commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .config import load_config
from .design.document import parse_document
from .errors import SyncError
from .logging import configure_logging
from .models import FailedResult, NoOpResult
from .orchestrator import Orchestrator


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    _add_verbose_option(parser, suppress_default=True)
    parser.add_argument(
        "--config",
        default=".",
        help="Path to .figsync.yml or the directory containing it (defaults to current directory).",
    )
    parser.add_argument(
        "--document",
        default=None,
        help="Design document id (overrides design.file_id / FIGMA_FILE_ID).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="figsync",
        description="Generate code from a design document and publish it as a pull request.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write detailed logs to this file.",
    )
    parser.add_argument(
        "--run-id",
        default=None,
        help="Id stamped on every log-file record (defaults to a random one).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser(
        "sync",
        help="Fetch the design, regenerate files and open a pull request when they changed.",
    )
    _add_common_options(sync_parser)
    sync_parser.add_argument(
        "--event",
        default=None,
        help="Webhook event type that triggered the run (PING, FILE_COMMENT and FILE_DELETE are ignored).",
    )
    sync_parser.add_argument(
        "--force",
        action="store_true",
        help="Publish even when the generated files match the last published snapshot.",
    )

    generate_parser = subparsers.add_parser(
        "generate",
        help="Render the generated files into a local directory without publishing.",
    )
    _add_common_options(generate_parser)
    generate_parser.add_argument(
        "--from-json",
        type=Path,
        default=None,
        help="Read the design document from a saved files API response instead of fetching it.",
    )
    generate_parser.add_argument(
        "--out",
        type=Path,
        required=True,
        help="Directory to write generated files into.",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for figsync commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file, run_id=args.run_id)

    try:
        config = load_config(Path(args.config))
    except SyncError as exc:
        parser.exit(1, f"{exc}\n")
    orchestrator = Orchestrator(config)

    if args.command == "sync":
        result = orchestrator.synchronize(
            args.document,
            event=args.event,
            force=bool(getattr(args, "force", False)),
        )
        if isinstance(result, FailedResult):
            parser.exit(
                1,
                f"figsync sync failed ({result.error.kind}): {result.error}\n"
                "Run with --verbose for more details.\n",
            )
        if isinstance(result, NoOpResult):
            print(f"Nothing to publish: {result.reason}")
        else:
            request = result.change_request
            print(f"Opened pull request #{request.number}: {request.url or request.branch}")
            print(f"Changes: {result.delta.summary()}")
    elif args.command == "generate":
        try:
            if args.from_json is not None:
                payload = json.loads(args.from_json.read_text(encoding="utf-8"))
                document = parse_document(args.document or args.from_json.stem, payload)
                files = orchestrator.render_document(document)
            else:
                files = orchestrator.render(args.document)
        except (OSError, ValueError, SyncError) as exc:
            parser.exit(1, f"figsync generate failed: {exc}\n")
        out_dir: Path = args.out
        for relative, content in files.files.items():
            target = out_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        print(f"Wrote {len(files)} files to {_relativize(out_dir)}")
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _relativize(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
