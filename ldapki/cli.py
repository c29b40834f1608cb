# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""Command line entry point for ldapki."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .app import Application
from .config import DEFAULT_CONFIG_PATH, Settings
from .errors import ConfigError, LoadError, PKIError

logger = logging.getLogger("ldapki")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ldapki",
        description="Issue user certificates from an intermediate CA for directory users",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Issue certificates for every user matched by the LDAP filter
  ldapki --config config.yml run

  # Issue one certificate without the directory
  ldapki issue --cn alice --email alice@example.org

  # Check a certificate against the configured CA
  ldapki verify certs/alice.crt
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        help=f"Path to YAML config file (default: {DEFAULT_CONFIG_PATH} if present)",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("run", help="Issue certificates for all directory users")

    issue = commands.add_parser("issue", help="Issue a single certificate")
    issue.add_argument("--cn", required=True, help="Common Name for the certificate")
    issue.add_argument(
        "--email",
        action="append",
        default=[],
        help="E-mail address (repeatable)",
    )
    issue.add_argument(
        "--out",
        type=Path,
        help="Output path without extension (default: <userCertSaveToPath>/<cn>)",
    )
    issue.add_argument("--days", type=int, help="Validity in days (default: from config)")
    issue.add_argument("--key-size", type=int, help="RSA key size (default: from config)")

    verify = commands.add_parser("verify", help="Verify a certificate against the CA")
    verify.add_argument("certificate", type=Path, help="PEM certificate to check")

    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _load_settings(config_path: Optional[Path]) -> Settings:
    if config_path is None and DEFAULT_CONFIG_PATH.exists():
        config_path = DEFAULT_CONFIG_PATH
    return Settings.load(config_path)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        settings = _load_settings(args.config)
    except ConfigError as e:
        configure_logging("INFO")
        logger.error(str(e))
        return EXIT_CONFIG

    if args.debug:
        settings.debug = True
    configure_logging(settings.effective_log_level)
    logger.debug("Debug mode enabled")

    app = Application(settings)

    try:
        if args.command == "run":
            report = app.run()
            return EXIT_OK if report.ok else EXIT_FAILURE

        if args.command == "issue":
            result = app.issue_one(
                args.cn,
                emails=args.email,
                output_path=args.out,
                validity_days=args.days,
                key_size=args.key_size,
            )
            print(f"[+] Certificate generated for CN={result.common_name}:")
            print(f"    {result.cert_path}")
            print(f"    {result.key_path}")
            return EXIT_OK

        if args.command == "verify":
            cert = app.verify_certificate(args.certificate)
            print(f"[+] {args.certificate}: signed by {cert.issuer.rfc4514_string()}")
            return EXIT_OK

    except ConfigError as e:
        logger.error(str(e))
        return EXIT_CONFIG
    except LoadError as e:
        logger.critical(str(e))
        return EXIT_FAILURE
    except PKIError as e:
        logger.error(str(e))
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return EXIT_FAILURE

    return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
