"""
Host C toolchain introspection.

Builds the compiler argument list libclang needs to see the mbed TLS headers
the way the real compiler would: include directory, config header define,
caller-supplied flags, the toolchain's sysroot and an optional forced target.
"""

import enum
import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Callable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigurationError, ToolchainError


logger = logging.getLogger(__name__)

# Environment variable forcing the target triple used while parsing headers.
# Its value names the triple; an empty value selects the substitute.
TARGET_ENV_VAR = "MBEDTLS_BINDGEN_TARGET"
# Older build setups export this one; its value is ignored.
LEGACY_TARGET_ENV_VAR = "RUST_MBEDTLS_BINDGEN_TARGET"

# Known-good substitute for custom targets unknown to libclang
SUBSTITUTE_TARGET = "arm64-apple-ios13.1-macabi"

CONFIG_DEFINE = "MBEDTLS_CONFIG_FILE"

# Launchers that may precede the compiler in CC
KNOWN_WRAPPERS = ("ccache", "distcc", "sccache", "icecc", "cachepot", "buildcache")


class ToolFamily(enum.Enum):
    GNU = "gnu"
    CLANG = "clang"
    MSVC = "msvc"


def split_compiler(value: str) -> Tuple[List[str], str, List[str]]:
    """Split a CC value into launcher, compiler and leading arguments.

    ``ccache gcc -m32`` gives ``(['ccache'], 'gcc', ['-m32'])``. An empty value
    selects ``cc``.
    """
    parts = shlex.split(value) or ["cc"]
    if len(parts) > 1 and Path(parts[0]).stem in KNOWN_WRAPPERS:
        return parts[:1], parts[1], parts[2:]
    return [], parts[0], parts[1:]


def detect_family(compiler: str, runner: Callable = subprocess.run,
                  wrapper: Sequence[str] = ()) -> ToolFamily:
    """Classify a compiler by its version banner, falling back to its name."""
    name = Path(compiler).name.lower()
    if name in ("cl", "cl.exe"):
        return ToolFamily.MSVC

    try:
        result = runner([*wrapper, compiler, "--version"], capture_output=True)
    except OSError as e:
        logger.debug("could not run %s --version: %s", compiler, e)
    else:
        banner = result.stdout.decode("utf-8", "replace").lower()
        if "clang" in banner:
            return ToolFamily.CLANG
        if "microsoft" in banner:
            return ToolFamily.MSVC
        if banner:
            return ToolFamily.GNU

    if "clang" in name:
        return ToolFamily.CLANG
    return ToolFamily.GNU


class Tool:
    """A resolved C compiler and the arguments it would be invoked with."""

    def __init__(self, path: str, family: ToolFamily, args: List[str],
                 wrapper: Sequence[str] = ()):
        self.path = path
        self.family = family
        self.args = list(args)
        self.wrapper = list(wrapper)

    def is_like_gnu(self) -> bool:
        return self.family == ToolFamily.GNU

    def to_command(self, *extra: str) -> List[str]:
        return [*self.wrapper, self.path, *self.args, *extra]


class FlagSet:
    """Ordered compiler arguments, append-only until frozen."""

    def __init__(self, flags=()):
        self._flags: List[str] = list(flags)
        self._frozen = False

    def append(self, flag: str):
        if self._frozen:
            raise ConfigurationError(f"flag set is frozen, cannot add {flag!r}")
        self._flags.append(flag)

    def extend(self, flags):
        for flag in flags:
            self.append(flag)

    def freeze(self) -> "FlagSet":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __iter__(self) -> Iterator[str]:
        return iter(self._flags)

    def __len__(self) -> int:
        return len(self._flags)

    def __contains__(self, flag) -> bool:
        return flag in self._flags

    def __repr__(self):
        return f"FlagSet({self._flags!r})"


class Build:
    """Collects compiler configuration, in the spirit of the cc crate's Build."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None,
                 runner: Callable = subprocess.run):
        self.environ = os.environ if environ is None else environ
        self.runner = runner
        self.flags = FlagSet()
        self._family: Optional[ToolFamily] = None

    def include(self, path) -> "Build":
        self.flags.append(f"-I{path}")
        return self

    def define(self, name: str, value: Optional[str] = None) -> "Build":
        self.flags.append(f"-D{name}" if value is None else f"-D{name}={value}")
        return self

    def flag(self, flag: str) -> "Build":
        self.flags.append(flag)
        return self

    def env_cflags(self) -> List[str]:
        return shlex.split(self.environ.get("CFLAGS", ""))

    def get_compiler(self) -> Tool:
        wrapper, path, cc_args = split_compiler(self.environ.get("CC", ""))
        if self._family is None:
            self._family = detect_family(path, self.runner, wrapper)
        return Tool(path, self._family, [*cc_args, *self.flags, *self.env_cflags()], wrapper)


def path_to_text(path) -> str:
    """Return a path as valid UTF-8 text or fail the run."""
    text = os.fspath(path)
    if isinstance(text, bytes):
        try:
            return text.decode("utf-8")
        except UnicodeDecodeError:
            raise ConfigurationError(f"config.h path is not valid UTF-8: {text!r}")
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        raise ConfigurationError(f"config.h path is not valid UTF-8: {text!r}")
    return text


def extract_flags(mbedtls_include, config_h, cflags=(),
                  environ: Optional[Mapping[str, str]] = None,
                  runner: Callable = subprocess.run) -> Tuple[Build, Tool]:
    """Seed the compiler flags: include dir, config define, extra cflags."""
    build = Build(environ, runner)
    build.include(mbedtls_include)
    build.flag(f'-D{CONFIG_DEFINE}="{path_to_text(config_h)}"')
    logger.debug("flags after config define: %s", list(build.flags))

    for cflag in cflags:
        build.flag(cflag)
    logger.debug("flags after cflags: %s", list(build.flags))

    return build, build.get_compiler()


def trim_sysroot(text: str) -> str:
    """Strip exactly one trailing line terminator, CRLF before LF."""
    if text.endswith("\r\n"):
        return text[:-2]
    if text.endswith("\n"):
        return text[:-1]
    return text


def query_sysroot(tool: Tool, runner: Callable = subprocess.run) -> str:
    """Ask a GNU-like compiler for its sysroot."""
    try:
        result = runner(tool.to_command("--print-sysroot"), capture_output=True)
    except OSError as e:
        raise ToolchainError(f"could not run {tool.path}: {e}")

    try:
        path = result.stdout.decode("utf-8")
    except UnicodeDecodeError:
        raise ConfigurationError("Malformed sysroot")
    return trim_sysroot(path)


def resolve_sysroot(build: Build, tool: Tool, runner: Callable = subprocess.run) -> Optional[str]:
    """Determine the sysroot so libclang uses the correct system headers.

    Toolchains without a configured sysroot are skipped.
    """
    if not tool.is_like_gnu():
        logger.debug("%s is not GNU-like, skipping sysroot", tool.path)
        return None

    try:
        sysroot = query_sysroot(tool, runner)
    except ToolchainError as e:
        logger.debug("skipping sysroot: %s", e)
        return None

    build.flag(f"--sysroot={sysroot}")
    logger.debug("flags after sysroot: %s", list(build.flags))
    return sysroot


def target_override(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Return the triple libclang must parse for, if an override is set.

    libclang resolves the standard library headers from the target. Custom
    targets are unknown to it, so a known-equivalent one is substituted.
    """
    environ = os.environ if environ is None else environ
    if TARGET_ENV_VAR in environ:
        target = environ[TARGET_ENV_VAR] or SUBSTITUTE_TARGET
    elif LEGACY_TARGET_ENV_VAR in environ:
        target = SUBSTITUTE_TARGET
    else:
        return None
    logger.info("overriding target with %s", target)
    return target
