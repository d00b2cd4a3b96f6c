"""Write the generated bindings to disk."""

import logging
from pathlib import Path

from .codegen import FINISH_FUNCTION
from .errors import EmitError


logger = logging.getLogger(__name__)

BINDINGS_FILE = "bindings.py"
WRAPPER_FILE = "mod_bindings.py"

# FILE, time_t and friends come from the hand-written types module
FIXUP_IMPORT = "from .types import *  # for FILE, time_t, etc.\n"
# Layouts and prototypes are resolved once those names are in scope
FINISH_CALL = f"{FINISH_FUNCTION}()\n"
WRAPPER_SOURCE = "from . import bindings  # noqa: F401\n"


def render(bindings: str, union_impls: str) -> str:
    return bindings + union_impls + FIXUP_IMPORT + FINISH_CALL


def write_artifacts(out_dir, bindings: str, union_impls: str) -> Path:
    """Overwrite bindings.py and its re-exporting wrapper in out_dir."""
    out_dir = Path(out_dir)
    bindings_py = out_dir / BINDINGS_FILE
    try:
        bindings_py.write_text(render(bindings, union_impls), encoding="utf-8")
    except OSError as e:
        raise EmitError(bindings_py, e.strerror or str(e))
    logger.info("wrote %s", bindings_py)

    wrapper = out_dir / WRAPPER_FILE
    try:
        wrapper.write_text(WRAPPER_SOURCE, encoding="utf-8")
    except OSError as e:
        raise EmitError(wrapper, e.strerror or str(e))
    logger.debug("wrote %s", wrapper)

    return bindings_py
