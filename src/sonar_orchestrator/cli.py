"""Main CLI entry point for sonar-orchestrator."""
from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from sonar_orchestrator.distribution import BundledPluginsPolicy, DistributionSpec, Edition
from sonar_orchestrator.errors import OrchestratorError, StartupError, StartupTimeoutError
from sonar_orchestrator.locator import FileLocation, Location, MavenLocation, URLLocation
from sonar_orchestrator.server import DEFAULT_STARTUP_TIMEOUT, DEFAULT_STOP_TIMEOUT, ProcessState

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_STARTUP_FAILURE = 2
EXIT_TIMEOUT = 3
EXIT_INTERRUPTED = 130

DESCRIPTION = "Provision and run SonarQube servers for integration tests."
EPILOG = (
    "Examples:\n"
    "  sonar-orchestrator install --version 9.9.0.65466\n"
    "  sonar-orchestrator install --edition developer --version 'LATEST_RELEASE[10.4]'\n"
    "  sonar-orchestrator run --zip ./sonarqube-10.4.0.87286.zip -D sonar.web.port=9001\n"
)


def parse_location(text: str, packaging: str = "jar") -> Location:
    """Turn a command-line argument into a location.

    ``http(s)://...`` is a URL, ``group:artifact:version`` a Maven artifact
    and anything else a local file.
    """
    if text.startswith(("http://", "https://")):
        return URLLocation(text)
    parts = text.split(":")
    if len(parts) == 3 and not Path(text).exists():
        return MavenLocation(parts[0], parts[1], parts[2], packaging=packaging)
    return FileLocation(Path(text).expanduser())


def parse_property(text: str) -> tuple[str, str]:
    key, sep, value = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected key=value, got {text!r}")
    return key, value


def build_spec(args: argparse.Namespace) -> DistributionSpec:
    if args.keep_bundled_plugins:
        policy = BundledPluginsPolicy.keep_all_plugins()
    elif args.keep_bundled_plugin:
        policy = BundledPluginsPolicy.keep_matching(*args.keep_bundled_plugin)
    else:
        policy = BundledPluginsPolicy.keep_none()
    return DistributionSpec(
        edition=Edition(args.edition),
        version=args.sonar_version,
        zip_location=parse_location(args.zip, packaging="zip") if args.zip else None,
        bundled_plugins=tuple(parse_location(p) for p in args.bundled_plugin),
        plugins=tuple(parse_location(p) for p in args.plugin),
        bundled_plugins_policy=policy,
        server_properties=dict(args.property),
        empty_configuration=args.empty_configuration,
    )


def _add_distribution_args(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--version",
        dest="sonar_version",
        metavar="VERSION",
        help="SonarQube version or alias (DEV, LATEST_RELEASE[X.Y], DOGFOOD)",
    )
    source.add_argument(
        "--zip",
        metavar="PATH_OR_URL",
        help="Install this archive instead of resolving a version",
    )
    parser.add_argument(
        "--edition",
        choices=[e.value for e in Edition],
        default=Edition.COMMUNITY.value,
        help="SonarQube edition (default: %(default)s)",
    )
    parser.add_argument(
        "--plugin",
        action="append",
        default=[],
        metavar="LOCATION",
        help="Plugin to install into extensions/downloads (repeatable)",
    )
    parser.add_argument(
        "--bundled-plugin",
        action="append",
        default=[],
        metavar="LOCATION",
        help="Plugin to install next to the bundled ones (repeatable)",
    )
    keep = parser.add_mutually_exclusive_group()
    keep.add_argument(
        "--keep-bundled-plugins",
        action="store_true",
        help="Keep every plugin shipped with the distribution",
    )
    keep.add_argument(
        "--keep-bundled-plugin",
        action="append",
        default=[],
        metavar="PREFIX",
        help="Keep bundled plugins whose file name starts with PREFIX (repeatable)",
    )
    parser.add_argument(
        "-D",
        "--property",
        action="append",
        default=[],
        type=parse_property,
        metavar="KEY=VALUE",
        help="Server property written to conf/sonar.properties (repeatable)",
    )
    parser.add_argument(
        "--empty-configuration",
        action="store_true",
        help="Do not generate conf/sonar.properties",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug logging",
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="sonar-orchestrator",
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command")

    install_parser = subparsers.add_parser(
        "install",
        help="Resolve and install a SonarQube distribution",
        description="Resolve a distribution, unpack it into the workspace and\n"
                    "configure it. Prints the server home and URL.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_distribution_args(install_parser)

    run_parser = subparsers.add_parser(
        "run",
        help="Install, start and supervise a SonarQube server",
        description="Install a distribution, start it and keep it running.\n\n"
                    "Server runs until Ctrl+C, then it is stopped.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_distribution_args(run_parser)
    run_parser.add_argument(
        "--startup-timeout",
        type=float,
        default=DEFAULT_STARTUP_TIMEOUT,
        help="Seconds to wait for the server to be up (default: %(default)s)",
    )
    run_parser.add_argument(
        "--stop-timeout",
        type=float,
        default=DEFAULT_STOP_TIMEOUT,
        help="Seconds to wait for a graceful stop before killing (default: %(default)s)",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_SUCCESS

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "install":
        return run_install(args)
    elif args.command == "run":
        return run_server(args)

    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------

def run_install(args: argparse.Namespace) -> int:
    """Resolve and install, then print where the server lives."""
    from sonar_orchestrator.orchestrator import Orchestrator

    try:
        spec = build_spec(args)
        handle = Orchestrator().resolve_and_install(spec)
    except OrchestratorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except KeyboardInterrupt:
        print("\nInterrupted.", flush=True)
        return EXIT_INTERRUPTED

    print(f"SonarQube {handle.version} ({handle.edition.value}) installed")
    print(f"  home: {handle.home}")
    print(f"  url:  {handle.url}")
    return EXIT_SUCCESS


def run_server(args: argparse.Namespace) -> int:
    """Install and start a server, keep it alive until interrupted."""
    from sonar_orchestrator.orchestrator import Orchestrator

    orchestrator = None
    handle = None
    try:
        spec = build_spec(args)
        orchestrator = Orchestrator(
            startup_timeout=args.startup_timeout,
            stop_timeout=args.stop_timeout,
        )
        handle = orchestrator.resolve_and_install(spec)
        process = orchestrator.start(handle)
        if process.state is not ProcessState.STARTED:
            # Ctrl+C while waiting for startup
            orchestrator.stop(handle)
            print("\nInterrupted.", flush=True)
            return EXIT_INTERRUPTED

        print(f"Server running at {handle.url}", flush=True)
        print("Press Ctrl+C to stop.", flush=True)
        try:
            while process.is_alive:
                time.sleep(1)
            print("Server exited.", file=sys.stderr, flush=True)
            return EXIT_ERROR
        except KeyboardInterrupt:
            print("\nShutting down...", flush=True)
    except StartupTimeoutError as e:
        print(f"Error: {e}", file=sys.stderr, flush=True)
        return EXIT_TIMEOUT
    except StartupError as e:
        print(f"Error: {e}", file=sys.stderr, flush=True)
        return EXIT_STARTUP_FAILURE
    except OrchestratorError as e:
        print(f"Error: {e}", file=sys.stderr, flush=True)
        return EXIT_ERROR
    except KeyboardInterrupt:
        print("\nInterrupted.", flush=True)
        return EXIT_INTERRUPTED
    finally:
        if orchestrator is not None and handle is not None:
            orchestrator.stop(handle)

    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
