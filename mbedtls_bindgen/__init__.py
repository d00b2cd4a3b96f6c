"""
mbed TLS ctypes binding generator

Parses the enabled mbed TLS headers with libclang and writes a Python ctypes
module with the library prefix stripped from every name.

Usage:
    from mbedtls_bindgen import BuildConfig, StaticHeaders
    BuildConfig(include, config_h, out_dir, StaticHeaders(["ssl.h"])).bindgen()
"""

from mbedtls_bindgen.build import BuildConfig, generate
from mbedtls_bindgen.callbacks import MbedtlsParseCallbacks, ParseCallbacks
from mbedtls_bindgen.errors import (
    BindgenError, ConfigurationError, EmitError, ExtractionError, ToolchainError,
)
from mbedtls_bindgen.headers import HeaderList, StaticHeaders

__version__ = "0.1.0"

__all__ = [
    "BindgenError",
    "BuildConfig",
    "ConfigurationError",
    "EmitError",
    "ExtractionError",
    "HeaderList",
    "MbedtlsParseCallbacks",
    "ParseCallbacks",
    "StaticHeaders",
    "ToolchainError",
    "__version__",
    "generate",
]
