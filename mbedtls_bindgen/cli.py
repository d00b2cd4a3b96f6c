"""
Command line front end.

Usage:
    python -m mbedtls_bindgen --include ./mbedtls/include \\
        --config-h ./config.h --out-dir ./out --header ssl.h --header x509.h
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from .build import BuildConfig
from .errors import BindgenError
from .headers import StaticHeaders


logger = logging.getLogger(__name__)


def read_headers_file(path: Path):
    """One header per line; blank lines and # comments are ignored."""
    headers = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            headers.append(line)
    return headers


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mbedtls_bindgen",
        description="Generate Python ctypes bindings for the mbed TLS headers",
    )
    parser.add_argument(
        "--include", "-I",
        type=Path,
        required=True,
        help="mbed TLS include directory (the one containing mbedtls/)",
    )
    parser.add_argument(
        "--config-h", "-c",
        type=Path,
        required=True,
        help="Path to the mbed TLS configuration header",
    )
    parser.add_argument(
        "--out-dir", "-o",
        type=Path,
        required=True,
        help="Directory receiving bindings.py and mod_bindings.py",
    )
    parser.add_argument(
        "--header",
        action="append",
        default=[],
        help="Enabled header, relative to mbedtls/ (repeatable, in include order)",
    )
    parser.add_argument(
        "--headers-file",
        type=Path,
        help="File listing enabled headers, one per line",
    )
    parser.add_argument(
        "--cflag",
        action="append",
        default=[],
        help="Extra compiler flag (repeatable)",
    )
    parser.add_argument(
        "--libclang", "-l",
        type=str,
        default=None,
        help="Path to libclang library (optional)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log compiler flags and other details",
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        headers = list(args.header)
        if args.headers_file:
            headers.extend(read_headers_file(args.headers_file))

        config = BuildConfig(
            mbedtls_include=args.include,
            config_h=args.config_h,
            out_dir=args.out_dir,
            headers=StaticHeaders(headers),
            cflags=args.cflag,
            libclang_path=args.libclang or os.environ.get("LIBCLANG_PATH"),
        )
        output = config.bindgen()
    except (BindgenError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    logger.info("generated %s", output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
