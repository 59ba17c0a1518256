"""Command-line tools for operating the TaxByte identity core."""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .core.config import Settings
from .security.secret_codec import SecretCodec
from .utils.errors import TaxbyteError, format_error


class Colors:
    GREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"


def print_success(text: str) -> None:
    print(f"{Colors.GREEN}{text}{Colors.ENDC}", file=sys.stderr)


def print_error(text: str) -> None:
    print(f"{Colors.FAIL}{text}{Colors.ENDC}", file=sys.stderr)


def cmd_keygen(args: argparse.Namespace) -> int:
    # Key goes to stdout alone so it can be piped into a secret manager.
    print(SecretCodec.generate_key())
    print_success("Generated a new 32-byte encryption key (TAXBYTE_ENCRYPTION_KEY)")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    settings = Settings.from_env(args.env_file)
    SecretCodec(settings.security.encryption_key)
    print(json.dumps(settings.get_environment_summary(), indent=2))
    return 0


def cmd_purge(args: argparse.Namespace) -> int:
    from .bootstrap import build_services

    services = build_services(Settings.from_env(args.env_file))
    sessions = services.auth.purge_expired_sessions()
    states = services.flow.purge_expired_states()
    print_success(f"Removed {sessions} expired sessions and {states} expired OAuth states")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taxbyte-identity", description="TaxByte identity core utilities"
    )
    parser.add_argument("--env-file", default=None, help="Path to a .env file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("keygen", help="Generate an encryption key").set_defaults(
        func=cmd_keygen
    )
    subparsers.add_parser("config", help="Validate and summarize configuration").set_defaults(
        func=cmd_config
    )
    subparsers.add_parser(
        "purge", help="Delete expired sessions and OAuth states"
    ).set_defaults(func=cmd_purge)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except TaxbyteError as e:
        print_error(format_error(args.command.capitalize(), e))
        return 1
    except KeyboardInterrupt:
        print("\nCancelled by user.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
