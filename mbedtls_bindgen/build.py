"""
Build configuration and the binding generation pipeline.

Every stage feeds the next; any fatal error aborts the run with nothing
written.
"""

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Mapping, Optional

from . import extractor
from .callbacks import MbedtlsParseCallbacks
from .emitter import write_artifacts
from .errors import ConfigurationError
from .headers import INPUT_NAME, HeaderProvider, StaticHeaders, aggregate
from .shims import generate_deprecated_union_accessors
from .toolchain import FlagSet, extract_flags, resolve_sysroot, target_override


logger = logging.getLogger(__name__)

ALLOW_PATTERN = "^(?i)mbedtls_.*"
BLOCK_TYPE_PATTERN = "^mbedtls_time_t$"
LINK_PREFIX = "mbedtls_"

RAW_LINES = [
    "# flake8: noqa",
    "# Generated by mbedtls_bindgen, do not edit.",
]


def _required_env(environ: Mapping[str, str], name: str) -> str:
    try:
        return environ[name]
    except KeyError:
        raise ConfigurationError(f"{name} is not set")


@dataclass
class BuildConfig:
    mbedtls_include: Path
    config_h: Path
    out_dir: Path
    headers: HeaderProvider
    cflags: List[str] = field(default_factory=list)
    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)
    libclang_path: Optional[str] = None
    runner: Callable = subprocess.run

    @classmethod
    def from_env(cls, headers: HeaderProvider,
                 environ: Optional[Mapping[str, str]] = None) -> "BuildConfig":
        """Read the build layout from the environment."""
        environ = os.environ if environ is None else environ
        return cls(
            mbedtls_include=Path(_required_env(environ, "MBEDTLS_INCLUDE_DIR")),
            config_h=Path(_required_env(environ, "MBEDTLS_CONFIG_H")),
            out_dir=Path(_required_env(environ, "OUT_DIR")),
            headers=headers,
            cflags=shlex.split(environ.get("MBEDTLS_CFLAGS", "")),
            environ=environ,
            libclang_path=environ.get("LIBCLANG_PATH"),
        )

    def compiler_flags(self) -> FlagSet:
        """Collect everything libclang needs to see the headers as cc would."""
        build, tool = extract_flags(
            self.mbedtls_include, self.config_h, self.cflags,
            environ=self.environ, runner=self.runner,
        )

        # Determine the sysroot for this compiler so that libclang
        # uses the correct headers
        resolve_sysroot(build, tool, self.runner)

        flags = FlagSet(build.get_compiler().args)
        logger.debug("compiler flags: %s", list(flags))
        return flags

    def bindgen(self) -> Path:
        """Generate bindings.py and mod_bindings.py in out_dir."""
        input_unit = aggregate(self.headers.enabled_ordered())
        flags = self.compiler_flags().freeze()

        # libclang picks the standard library headers from the target, so
        # custom targets are replaced with a known equivalent for this parse
        target = target_override(self.environ)

        bindings = (
            extractor.builder()
            .libclang(self.libclang_path)
            .clang_args(list(flags))
            .target(target)
            .header_contents(INPUT_NAME, input_unit)
            .allowlist_function(ALLOW_PATTERN)
            .allowlist_type(ALLOW_PATTERN)
            .allowlist_var(ALLOW_PATTERN)
            .allowlist_recursively(False)
            .blocklist_type(BLOCK_TYPE_PATTERN)
            .parse_callbacks(MbedtlsParseCallbacks())
            .generate_comments(False)
            .derive_copy(True)
            .derive_debug(False)  # unreliable for these headers
            .derive_default(True)
            .prepend_enum_name(False)
            .translate_enum_integer_types(True)
            .link_prefix(LINK_PREFIX)
            .raw_line(RAW_LINES[0])
            .raw_line(RAW_LINES[1])
            .generate()
            .to_string()
        )

        union_impls = generate_deprecated_union_accessors(bindings)
        return write_artifacts(self.out_dir, bindings, union_impls)


def generate(mbedtls_include, config_h, out_dir, headers, **kwargs) -> Path:
    """Run the pipeline for a fixed header list."""
    config = BuildConfig(
        mbedtls_include=Path(mbedtls_include),
        config_h=Path(config_h),
        out_dir=Path(out_dir),
        headers=StaticHeaders(headers),
        **kwargs,
    )
    return config.bindgen()
