"""
Parse callbacks: the naming and trait policy consulted during extraction.

The extractor calls these hooks for every declaration it emits. A hook
returning None leaves the extractor's default behaviour in place.
"""

import enum
from typing import NamedTuple, Optional


LOWER_PREFIX = "mbedtls_"
UPPER_PREFIX = "MBEDTLS_"

INT_MIN = -2 ** 31
INT_MAX = 2 ** 31 - 1


class IntKind(enum.Enum):
    """ctypes integer type a macro constant is declared with."""
    BOOL = "c_bool"
    SCHAR = "c_byte"
    UCHAR = "c_ubyte"
    SHORT = "c_short"
    USHORT = "c_ushort"
    INT = "c_int"
    UINT = "c_uint"
    LONG = "c_long"
    ULONG = "c_ulong"
    LONG_LONG = "c_longlong"
    ULONG_LONG = "c_ulonglong"

    @property
    def ctype(self) -> str:
        return self.value


class DeriveTrait(enum.Enum):
    COPY = "copy"
    DEBUG = "debug"
    DEFAULT = "default"
    HASH = "hash"
    PARTIAL_EQ = "partial_eq"


class ImplementsTrait(enum.Enum):
    YES = "yes"
    NO = "no"
    MANUALLY = "manually"


class EnumVariantValue(NamedTuple):
    value: int
    signed: bool = True


def trim_prefix(name: str, prefix: str) -> str:
    """Remove every leading repetition of prefix."""
    while name.startswith(prefix):
        name = name[len(prefix):]
    return name


class ParseCallbacks:
    """Hooks with no opinion; subclass and override what you need."""

    def item_name(self, original_item_name: str) -> Optional[str]:
        return None

    def enum_variant_name(self, enum_name: Optional[str], original_variant_name: str,
                          variant_value: EnumVariantValue) -> Optional[str]:
        return None

    def int_macro(self, name: str, value: int) -> Optional[IntKind]:
        return None

    def blocklisted_type_implements_trait(self, name: str,
                                          derive_trait: DeriveTrait) -> Optional[ImplementsTrait]:
        return None


class MbedtlsParseCallbacks(ParseCallbacks):
    """Strips the library prefix and sizes integer macros."""

    def item_name(self, original_item_name):
        return trim_prefix(trim_prefix(original_item_name, LOWER_PREFIX), UPPER_PREFIX)

    def enum_variant_name(self, enum_name, original_variant_name, variant_value):
        return self.item_name(original_variant_name)

    def int_macro(self, name, value):
        if value < INT_MIN or value > INT_MAX:
            return IntKind.LONG_LONG
        return IntKind.INT

    def blocklisted_type_implements_trait(self, name, derive_trait):
        if derive_trait == DeriveTrait.DEFAULT:
            return ImplementsTrait.MANUALLY
        return ImplementsTrait.YES
