"""CLI entry point for reqly.

Handles argument parsing and dispatches to send or check-vars mode.
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reqly.models import AssertionResult, Environment, RequestConfig, RequestFile, TransportConfig


DEFAULT_TIMEOUT = 60.0
BODY_PREVIEW_LIMIT = 500


def positive_float(value: str) -> float:
    """Parse and validate a positive float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


@dataclass
class SendArgs:
    """Parsed arguments for send mode."""

    request: Path
    env: Path | None
    config: Path | None
    timeout: float | None
    verify_ssl: bool
    ca_bundle: Path | None
    follow_redirects: bool
    out: Path | None
    verbose: bool


@dataclass
class CheckVarsArgs:
    """Parsed arguments for check-vars mode."""

    request: Path
    env: Path | None


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with send and check-vars subcommands."""
    parser = argparse.ArgumentParser(
        prog="reqly",
        description="Send HTTP requests described in YAML/JSON files and print normalized responses.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Execution mode")

    # Send subcommand
    send_parser = subparsers.add_parser(
        "send",
        help="Send a request file and print the response as JSON",
    )
    send_parser.add_argument(
        "--request",
        type=Path,
        required=True,
        help="Path to request file (YAML or JSON)",
    )
    send_parser.add_argument(
        "--env",
        type=Path,
        default=None,
        help="Path to environment file providing {{variable}} values",
    )
    send_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to transport config file (timeout, verify_ssl, ca_bundle, follow_redirects)",
    )
    send_parser.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        help=f"Request timeout in seconds (default: {DEFAULT_TIMEOUT})",
    )
    tls_group = send_parser.add_mutually_exclusive_group()
    tls_group.add_argument(
        "--verify-ssl",
        action="store_true",
        help="Validate server certificates (off by default for local development)",
    )
    tls_group.add_argument(
        "--ca-bundle",
        type=Path,
        default=None,
        help="CA bundle for certificate validation (implies --verify-ssl)",
    )
    send_parser.add_argument(
        "--no-follow-redirects",
        dest="follow_redirects",
        action="store_false",
        help="Return redirect responses instead of following them",
    )
    send_parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Write the response JSON to this file instead of stdout",
    )
    send_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print the outgoing request summary to stderr",
    )

    # Check-vars subcommand
    check_parser = subparsers.add_parser(
        "check-vars",
        help="List {{variable}} references in a request and report unresolved ones",
    )
    check_parser.add_argument(
        "--request",
        type=Path,
        required=True,
        help="Path to request file (YAML or JSON)",
    )
    check_parser.add_argument(
        "--env",
        type=Path,
        default=None,
        help="Path to environment file providing {{variable}} values",
    )

    return parser


def parse_send_args(namespace: argparse.Namespace) -> SendArgs:
    """Convert parsed namespace to SendArgs dataclass."""
    return SendArgs(
        request=namespace.request,
        env=namespace.env,
        config=namespace.config,
        timeout=namespace.timeout,
        verify_ssl=namespace.verify_ssl,
        ca_bundle=namespace.ca_bundle,
        follow_redirects=namespace.follow_redirects,
        out=namespace.out,
        verbose=namespace.verbose,
    )


def parse_check_vars_args(namespace: argparse.Namespace) -> CheckVarsArgs:
    """Convert parsed namespace to CheckVarsArgs dataclass."""
    return CheckVarsArgs(request=namespace.request, env=namespace.env)


def parse_args(args: list[str] | None = None) -> SendArgs | CheckVarsArgs:
    """Parse command-line arguments and return typed args dataclass.

    Args:
        args: Command-line arguments to parse. If None, uses sys.argv[1:].

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)

    if namespace.command == "send":
        return parse_send_args(namespace)
    elif namespace.command == "check-vars":
        return parse_check_vars_args(namespace)
    else:
        # Should not happen with required=True on subparsers
        parser.error(f"Unknown command: {namespace.command}")


def dispatch(parsed: SendArgs | CheckVarsArgs) -> int:
    """Run the mode selected by ``parsed`` and return the exit code."""
    if isinstance(parsed, SendArgs):
        return run_send(parsed)
    return run_check_vars(parsed)


def main() -> int:
    """Main entry point."""
    try:
        return dispatch(parse_args())
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def _load_inputs(
    request_path: Path,
    env_path: Path | None,
) -> tuple[RequestFile, Environment | None]:
    """Load the request file and optional environment file.

    Raises:
        ConfigError: If either file cannot be loaded.
    """
    from reqly.config_loader import load_environment, load_request_file

    request_file = load_request_file(request_path)
    environment = load_environment(env_path) if env_path is not None else None
    return request_file, environment


def build_transport_config(args: SendArgs) -> TransportConfig:
    """Merge the optional transport config file with command-line overrides.

    Raises:
        ConfigError: If the transport config file cannot be loaded.
    """
    from reqly.config_loader import load_transport_config
    from reqly.models import TransportConfig

    base = load_transport_config(args.config) if args.config is not None else TransportConfig()
    overrides: dict[str, object] = {}
    if args.timeout is not None:
        overrides["timeout"] = args.timeout
    if args.verify_ssl:
        overrides["verify_ssl"] = True
    if args.ca_bundle is not None:
        overrides["ca_bundle"] = str(args.ca_bundle)
        overrides["verify_ssl"] = True
    if not args.follow_redirects:
        overrides["follow_redirects"] = False
    return base.model_copy(update=overrides)


def format_request_summary(request: RequestConfig) -> str:
    """One-line description of the request plus a truncated body preview."""
    line = f"{request.method} {request.url} (auth: {request.auth.type.value}, body: {request.body.type.value})"
    content = request.body.content
    if content:
        preview = content
        if len(content) > BODY_PREVIEW_LIMIT:
            preview = content[:BODY_PREVIEW_LIMIT] + "...(+truncated)"
        line += f"\n  Body ({len(content)} chars): {preview}"
    return line


def format_assertion_results(results: list[AssertionResult]) -> str:
    """One line per assertion plus a passed/failed tally."""
    lines = []
    for result in results:
        if result.passed:
            lines.append(f"  PASS {result.name}")
        else:
            lines.append(f"  FAIL {result.name}: {result.message}")
    failed = sum(1 for result in results if not result.passed)
    lines.append(f"Assertions: {len(results) - failed} passed, {failed} failed")
    return "\n".join(lines)


def run_send(args: SendArgs) -> int:
    """Run send mode.

    Returns:
        Exit code: 0 when a response was received (whatever its status) and
        every assertion passed, 1 on configuration, request or write errors
        and on failed assertions.
    """
    from reqly.assertions import evaluate_assertions
    from reqly.config_loader import ConfigError
    from reqly.errors import ExecutorError
    from reqly.executor import execute_http_request
    from reqly.variables import substitute_request

    try:
        request_file, environment = _load_inputs(args.request, args.env)
        transport_config = build_transport_config(args)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    request = request_file.request
    if environment is not None:
        request = substitute_request(request, environment)

    if args.verbose:
        print(f"Sending {format_request_summary(request)}", file=sys.stderr)
        if not transport_config.verify_ssl and not transport_config.ca_bundle:
            print("  Warning: certificate validation is disabled", file=sys.stderr)

    try:
        response = execute_http_request(request, transport_config)
    except ExecutorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    output = response.model_dump_json(by_alias=True, indent=2)
    if args.out is not None:
        try:
            args.out.parent.mkdir(parents=True, exist_ok=True)
            args.out.write_text(output + "\n", encoding="utf-8")
        except OSError as e:
            print(f"Error: cannot write response to {args.out}: {e}", file=sys.stderr)
            return 1
        print(f"Response written to: {args.out}")
    else:
        print(output)

    if args.verbose:
        print(
            f"{response.status} {response.status_text} in {response.time}ms, {response.size} bytes",
            file=sys.stderr,
        )

    if not request_file.assertions:
        return 0
    results = evaluate_assertions(request_file.assertions, response)
    print(format_assertion_results(results), file=sys.stderr)
    return 0 if all(result.passed for result in results) else 1


def run_check_vars(args: CheckVarsArgs) -> int:
    """Run check-vars mode.

    Returns:
        Exit code: 0 if every reference resolves, 1 otherwise.
    """
    from reqly.config_loader import ConfigError
    from reqly.variables import validate_request_variables

    try:
        request_file, environment = _load_inputs(args.request, args.env)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    check = validate_request_variables(request_file.request, environment)

    if not check.references:
        print("No variable references found")
        return 0

    print(f"Variables referenced: {len(check.references)}")
    for name in check.references:
        status = "MISSING" if name in check.missing else "ok"
        print(f"  {{{{{name}}}}}: {status}")

    if check.is_valid:
        print("All variables resolved")
        return 0

    print(f"Unresolved variables: {', '.join(check.missing)}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
