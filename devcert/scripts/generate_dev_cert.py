#!/usr/bin/env python3
"""Generate a locally trusted development certificate for a domain."""

import argparse
import asyncio
import os
import sys
from pathlib import Path

from devcert.lib.cert_manager import DevCertManager
from devcert.lib.config import DevCertConfig
from devcert.lib.errors import DevCertError
from devcert.lib.logging_config import LOGGER, set_verbose
from devcert.lib.models import DevCertificate


def write_bundle(bundle: DevCertificate, output_dir: Path) -> tuple[Path, Path, Path]:
    """Write key, certificate and root CA as PEM files.

    Returns:
        Tuple of (key_path, cert_path, ca_path)
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    key_path = output_dir / f"{bundle.common_name}.key"
    cert_path = output_dir / f"{bundle.common_name}.crt"
    ca_path = output_dir / f"{bundle.common_name}-ca.crt"

    fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(bundle.key)
    cert_path.write_text(bundle.cert, encoding="utf-8")
    ca_path.write_text(bundle.ca, encoding="utf-8")
    return key_path, cert_path, ca_path


async def run(common_name: str, output_dir: Path, config: DevCertConfig) -> DevCertificate:
    """Issue the certificate, then stop any fallback listener still running."""
    manager = DevCertManager(config)
    try:
        bundle = await manager.generate(common_name)
    finally:
        await manager.installer.fallback.close()
    write_bundle(bundle, output_dir)
    return bundle


def main(argv: list[str] | None = None) -> int:
    """Generate a development certificate.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(
        description="Generate a TLS certificate signed by a locally trusted root CA"
    )
    parser.add_argument("common_name", help="Domain name to issue the certificate for")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("."),
        help="Directory for <name>.key, <name>.crt and <name>-ca.crt (default: current directory)",
    )
    parser.add_argument(
        "--openssl",
        default="openssl",
        help="openssl executable to drive (default: openssl)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    set_verbose(args.verbose)

    try:
        config = DevCertConfig(openssl_binary=args.openssl)
        LOGGER.info("Generating development certificate for %s...", args.common_name)
        asyncio.run(run(args.common_name, args.output_dir, config))

        LOGGER.info("Certificate written to %s", args.output_dir)
        return 0

    except DevCertError as e:
        LOGGER.error("Certificate generation failed: %s", e)
        return 1
    except OSError as e:
        LOGGER.error("Could not write certificate files: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
