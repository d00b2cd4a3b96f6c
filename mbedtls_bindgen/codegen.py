"""
ctypes source generation.

Renders the declarations collected by the extractor as a Python module.
Records are forward-declared first so that pointers between them resolve.
Constants and enums follow at module level. Everything that spells a type
(layouts, aliases, prototypes) goes into a `_finish()` function, in header
order, so the names it uses only have to exist once `_finish()` is called.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .declarations import (
    Constant, Declaration, Enum, Function, FunctionType, Record, TypeAlias, Variable,
)


# Defined by every generated module; the emitter calls it after the
# platform types import
FINISH_FUNCTION = "_finish"
GLOBALS_PER_LINE = 6

CTYPES_NAMES = (
    "Structure, Union, POINTER, CFUNCTYPE,",
    "c_bool, c_char, c_byte, c_ubyte, c_short, c_ushort,",
    "c_int, c_uint, c_long, c_ulong, c_longlong, c_ulonglong,",
    "c_float, c_double, c_longdouble, c_size_t, c_ssize_t, c_void_p, c_char_p,",
    "c_int8, c_uint8, c_int16, c_uint16, c_int32, c_uint32,",
    "c_int64, c_uint64, c_wchar, c_wchar_p,",
    "sizeof,",
)

RUNTIME_HELPERS = '''\
_PROTOTYPES = []
_VARIABLES = []


class _Prototype:
    """A foreign function, callable once load_library() has bound it."""

    def __init__(self, name, link_name, restype, argtypes, variadic=False):
        self.name = name
        self.link_name = link_name or _LINK_PREFIX + name
        self.restype = restype
        self.argtypes = argtypes
        self.variadic = variadic
        self._fn = None
        _PROTOTYPES.append(self)

    def bind(self, lib):
        fn = getattr(lib, self.link_name)
        fn.restype = self.restype
        if not self.variadic:
            fn.argtypes = self.argtypes
        self._fn = fn

    def __call__(self, *args):
        if self._fn is None:
            raise RuntimeError(f"{self.name} is not bound, call load_library() first")
        return self._fn(*args)


class _Variable:
    """A foreign global, readable once load_library() has bound it."""

    def __init__(self, name, link_name, ctype):
        self.name = name
        self.link_name = link_name or _LINK_PREFIX + name
        self.ctype = ctype
        self.value = None
        _VARIABLES.append(self)

    def bind(self, lib):
        self.value = self.ctype.in_dll(lib, self.link_name)


def load_library(path):
    """Load the shared library and bind every declared function and global."""
    lib = ctypes.CDLL(str(path))
    for item in _PROTOTYPES + _VARIABLES:
        if hasattr(lib, item.link_name):
            item.bind(lib)
    return lib


def _record_copy(self):
    return type(self).from_buffer_copy(self)


def _record_repr(self):
    fields = ", ".join(f"{f[0]}={getattr(self, f[0])!r}" for f in self._fields_)
    return f"{type(self).__name__}({fields})"


def _derived_default(cls):
    return cls()


def _manual_default(cls):
    return cls.from_buffer_copy(bytes(sizeof(cls)))
'''


@dataclass
class Bindings:
    """Generated declarations plus the options that shape their rendering."""
    declarations: List[Declaration] = field(default_factory=list)
    raw_lines: List[str] = field(default_factory=list)
    ctypes_prefix: str = "ctypes"
    link_prefix: str = ""

    def records(self) -> List[Record]:
        return [d for d in self.declarations if isinstance(d, Record)]

    def to_string(self) -> str:
        return BindingGenerator(self).generate()

    def __str__(self):
        return self.to_string()


class BindingGenerator:
    """Generate Python ctypes source from extracted declarations."""

    def __init__(self, bindings: Bindings):
        self.bindings = bindings
        self.output_lines: List[str] = []
        self.indent = ""

    def generate(self) -> str:
        """Generate the complete bindings module."""
        self._write_raw_lines()
        self._write_imports()
        self._write_runtime()
        self._write_forward_declarations()
        self._write_declarations()
        return "\n".join(self.output_lines) + "\n"

    def _write(self, line: str = ""):
        self.output_lines.append(self.indent + line if line else line)

    def _write_banner(self, title: str):
        self._write("# " + "=" * 77)
        self._write(f"# {title}")
        self._write("# " + "=" * 77)
        self._write()

    def _write_raw_lines(self):
        for line in self.bindings.raw_lines:
            self._write(line)
        if self.bindings.raw_lines:
            self._write()

    def _write_imports(self):
        self._write("import ctypes")
        self._write(f"from {self.bindings.ctypes_prefix} import (")
        for line in CTYPES_NAMES:
            self._write(f"    {line}")
        self._write(")")
        self._write()
        self._write(f"_LINK_PREFIX = {self.bindings.link_prefix!r}")
        self._write()

    def _write_runtime(self):
        self._write()
        self.output_lines.extend(RUNTIME_HELPERS.splitlines())
        self._write()

    def _write_forward_declarations(self):
        records = self.bindings.records()
        if not records:
            return

        self._write()
        self._write_banner("Forward Declarations")
        for record in records:
            body = self._record_body(record)
            if not body:
                self._write(f"class {record.name}({record.base}): pass")
                continue
            self._write(f"class {record.name}({record.base}):")
            for line in body:
                self._write(f"    {line}")
        self._write()

    def _record_body(self, record: Record) -> List[str]:
        body = []
        if record.copy:
            body.append("__copy__ = _record_copy")
        if record.debug:
            body.append("__repr__ = _record_repr")
        if record.default == "derived":
            body.append("default = classmethod(_derived_default)")
        elif record.default == "manual":
            body.append("default = classmethod(_manual_default)")
        return body

    def _write_declarations(self):
        self._write()
        self._write_banner("Declarations")
        deferred = []
        for decl in self.bindings.declarations:
            if isinstance(decl, Constant):
                self._write(f"{decl.name}: {decl.ctype} = {decl.value}")
            elif isinstance(decl, Enum):
                self._write_enum(decl)
            else:
                deferred.append(decl)
        self._write_finish(deferred)

    def _write_finish(self, decls: List[Declaration]):
        # Layouts and signatures may name types from the hand-written types
        # module, which is only imported at the very end of the file.
        self._write()
        self._write()
        self._write(f"def {FINISH_FUNCTION}():")
        self.indent = "    "
        self._write('"""Resolve layouts and signatures once the platform types are imported."""')
        names = [decl.name for decl in decls if not isinstance(decl, Record)]
        for i in range(0, len(names), GLOBALS_PER_LINE):
            self._write("global " + ", ".join(names[i:i + GLOBALS_PER_LINE]))

        for decl in decls:
            if isinstance(decl, TypeAlias):
                self._write(f"{decl.name} = {decl.target}")
            elif isinstance(decl, FunctionType):
                self._write(f"{decl.name} = {self._cfunctype(decl.restype, decl.argtypes)}")
            elif isinstance(decl, Record):
                self._write_record(decl)
            elif isinstance(decl, Function):
                self._write_function(decl)
            elif isinstance(decl, Variable):
                self._write(
                    f"{decl.name} = _Variable({decl.name!r}, {decl.link_name!r}, {decl.ctype})"
                )
        self.indent = ""

    def _write_enum(self, enum: Enum):
        ctype = enum.ctype
        if enum.name:
            self._write(f"{enum.name} = {enum.ctype}")
            ctype = enum.name
        for variant in enum.variants:
            self._write(f"{variant.name}: {ctype} = {variant.value}")

    def _write_record(self, record: Record):
        if record.comment:
            self._write(f"# {record.comment}")
        if record.fields is None:
            return
        if record.anonymous:
            names = "".join(f"{name!r}, " for name in record.anonymous)
            self._write(f"{record.name}._anonymous_ = ({names.rstrip()})")
        if not record.fields:
            self._write(f"{record.name}._fields_ = []")
            return
        self._write(f"{record.name}._fields_ = [")
        for f in record.fields:
            if f.bits is not None:
                self._write(f"    ({f.name!r}, {f.ctype}, {f.bits}),")
            else:
                self._write(f"    ({f.name!r}, {f.ctype}),")
        self._write("]")

    def _write_function(self, func: Function):
        if func.comment:
            self._write(f"# {func.comment}")
        args = ", ".join(func.argtypes)
        variadic = ", variadic=True" if func.variadic else ""
        self._write(
            f"{func.name} = _Prototype({func.name!r}, {func.link_name!r}, "
            f"{func.restype}, [{args}]{variadic})"
        )

    @staticmethod
    def _cfunctype(restype: str, argtypes: List[str]) -> str:
        return "CFUNCTYPE(" + ", ".join([restype, *argtypes]) + ")"


def cfunctype(restype: str, argtypes: Optional[List[str]] = None) -> str:
    """Spell a ctypes function pointer type."""
    return BindingGenerator._cfunctype(restype, argtypes or [])
