"""
Header aggregation.

The set of enabled mbed TLS headers depends on which optional features are
compiled in. That decision is made elsewhere; this module only receives the
ordered list and turns it into the single virtual input unit fed to libclang.
"""

from typing import Iterable, Protocol, Sequence, Tuple

from .errors import ConfigurationError


# Name of the in-memory translation unit handed to libclang
INPUT_NAME = "bindgen-input.h"

INCLUDE_DIR = "mbedtls"


class HeaderProvider(Protocol):
    """Supplies the enabled headers in include order."""

    def enabled_ordered(self) -> Sequence[str]:
        ...


class HeaderList(Tuple[str, ...]):
    """Ordered, duplicate-free sequence of header identifiers."""

    def __new__(cls, headers: Iterable[str] = ()):
        items = tuple(headers)
        seen = set()
        for header in items:
            if header in seen:
                raise ConfigurationError(f"duplicate header in list: {header}")
            seen.add(header)
        return super().__new__(cls, items)


class StaticHeaders:
    """A HeaderProvider over a fixed list."""

    def __init__(self, headers: Iterable[str]):
        self.headers = HeaderList(headers)

    def enabled_ordered(self) -> Sequence[str]:
        return self.headers


def aggregate(headers: Sequence[str]) -> str:
    """Build the virtual input unit: one include directive per header."""
    return "".join(f"#include <{INCLUDE_DIR}/{h}>\n" for h in headers)
