"""Error types raised by the binding generator.

Configuration, extraction and emit errors are fatal: they propagate to the
caller and abort the run. Toolchain errors only ever degrade the sysroot
probe and are logged, never raised out of the pipeline.
"""


class BindgenError(Exception):
    """Base class for binding generator errors"""


class ConfigurationError(BindgenError):
    """Unrepresentable paths, missing inputs or misuse of the flag set"""


class ToolchainError(BindgenError):
    """The host C compiler could not be queried"""


class ExtractionError(BindgenError):
    """libclang failed to produce declarations from the input unit"""


class EmitError(BindgenError):
    """An output artifact could not be created or written"""

    def __init__(self, path, reason):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")
