"""
Entrypoint: load .env and config.yaml, fetch the artifact from the first valid
candidate source, or inspect an artifact that is already on disk.
"""

import argparse
import asyncio
import sys

import structlog
from dotenv import load_dotenv

from artifact.config import Config
from artifact.errors import PersistError
from artifact.fetcher import create_fetcher
from artifact.logs import setup_logging
from artifact.storage import ArtifactStorage
from artifact.validator import DEFAULT_MIN_SIZE, build_rule, inspect_artifact
from artifact.worker import ArtifactFetcher, Candidate

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PERSIST = 2
EXIT_USAGE = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="artifact-fetcher",
        description="Download an archive artifact from the first valid mirror.",
    )
    parser.add_argument("--config", help="Path to config.yaml (default: ./config.yaml if present)")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-format", choices=("console", "json"))

    rules = argparse.ArgumentParser(add_help=False)
    rules.add_argument("--min-size", type=int, help="Reject bodies of this many bytes or fewer")
    rules.add_argument("--no-require-signature", dest="require_signature",
                       action="store_false", default=None,
                       help="Do not require the PK archive signature")
    rules.add_argument("--sha256", help="Expected SHA-256 hex digest of the artifact")

    sub = parser.add_subparsers(dest="command", required=True)

    fetch = sub.add_parser("fetch", parents=[rules], help="Fetch and persist the artifact")
    fetch.add_argument("urls", nargs="*", help="Candidate sources in priority order (overrides config)")
    fetch.add_argument("--dest", help="Destination file path")
    fetch.add_argument("--best-effort", action="store_true", default=None,
                       help="Persist a large-enough file even if strict validation fails")
    fetch.add_argument("--max-redirects", type=int)
    fetch.add_argument("--timeout", type=float, help="Per-request timeout in seconds")

    inspect = sub.add_parser("inspect", parents=[rules], help="Check an artifact already on disk")
    inspect.add_argument("path", nargs="?", help="File to inspect (default: configured destination)")

    return parser


def _pick(cli_value, config_value, default):
    if cli_value is not None:
        return cli_value
    if config_value is not None:
        return config_value
    return default


def _build_rule(args, config: Config):
    validation = config.validation
    return build_rule(
        min_size=int(_pick(args.min_size, validation.get('min_size'), DEFAULT_MIN_SIZE)),
        require_signature=bool(_pick(args.require_signature, validation.get('require_signature'), True)),
        sha256=_pick(args.sha256, validation.get('sha256'), None),
    )


def _print_outcomes(outcomes):
    for outcome in outcomes:
        if outcome.ok:
            print(f"OK   {outcome.url} ({outcome.size} bytes)")
        else:
            print(f"FAIL {outcome.url}: {outcome.reason}")


async def fetch_command(args, config: Config, transport=None) -> int:
    destination = _pick(args.dest, config.artifact.get('destination'), None)
    if not destination:
        print("ERROR: no destination given (use --dest or artifact.destination)", file=sys.stderr)
        return EXIT_USAGE

    candidates = args.urls or config.artifact.get('sources') or []
    if not candidates:
        print("ERROR: no candidate sources given", file=sys.stderr)
        return EXIT_USAGE

    try:
        candidates = [Candidate.parse(c) for c in candidates]
        rule = _build_rule(args, config)
    except (TypeError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_USAGE

    fetcher_config = dict(config.fetcher)
    if args.max_redirects is not None:
        fetcher_config['max_redirects'] = args.max_redirects
    if args.timeout is not None:
        fetcher_config['timeout'] = args.timeout
    best_effort = bool(_pick(args.best_effort, config.validation.get('best_effort'), False))

    storage = ArtifactStorage(destination)
    try:
        fetcher = create_fetcher(fetcher_config, transport=transport)
    except (TypeError, ValueError) as e:
        print(f"ERROR: invalid fetcher configuration: {e}", file=sys.stderr)
        return EXIT_USAGE

    async with fetcher:
        worker = ArtifactFetcher(fetcher, storage, rule=rule, best_effort=best_effort)
        try:
            report = await worker.fetch(candidates)
        except PersistError as e:
            _print_outcomes(e.outcomes)
            print(f"ERROR: could not save artifact: {e}", file=sys.stderr)
            return EXIT_PERSIST

    _print_outcomes(report.outcomes)

    if not report.success:
        print(f"FAILED: none of {len(report.outcomes)} candidate(s) produced a valid artifact")
        return EXIT_FAILED

    if report.verified:
        print(f"Saved {report.size} bytes to {report.destination}")
    else:
        print(f"Saved {report.size} bytes to {report.destination} from {report.source} "
              f"(UNVERIFIED: failed strict validation)")
    return EXIT_OK


def inspect_command(args, config: Config) -> int:
    path = args.path or config.artifact.get('destination')
    if not path:
        print("ERROR: no path given (pass PATH or set artifact.destination)", file=sys.stderr)
        return EXIT_USAGE

    try:
        rule = _build_rule(args, config)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_USAGE

    report = inspect_artifact(path, rule)
    if not report['exists']:
        print(f"{path}: does not exist")
        return EXIT_FAILED

    print(f"{path}: {report['size']} bytes")
    print(f"First 16 bytes (hex): {report['head_hex']}")
    print(f"Archive signature: {'yes' if report['signature_ok'] else 'no'}")
    if report['preview'] is not None:
        print(f"Leading text: {report['preview']!r}")
    if report['passed']:
        print("Valid")
        return EXIT_OK
    print(f"Invalid: {report['reason']}")
    return EXIT_FAILED


def main(argv=None, transport=None) -> int:
    """Parse arguments, load configuration and run the selected command."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        config = Config(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_USAGE

    setup_logging(
        level=_pick(args.log_level, config.logging.get('level'), 'INFO'),
        fmt=_pick(args.log_format, config.logging.get('format'), 'console'),
    )

    if args.command == "inspect":
        return inspect_command(args, config)
    return asyncio.run(fetch_command(args, config, transport=transport))


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
