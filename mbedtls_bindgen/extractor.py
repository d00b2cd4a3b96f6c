"""
Declaration extraction with libclang.

A ``Builder`` collects bindgen-style options, parses the input unit with
``clang.cindex`` and walks the translation unit in source order, turning the
allowlisted declarations into typed ``declarations`` objects. Naming and
trait decisions are delegated to a ``ParseCallbacks`` policy.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Sequence, Set, Tuple

from clang.cindex import (
    Config, CursorKind, Diagnostic, Index, LibclangError, TranslationUnit,
    TranslationUnitLoadError, TypeKind,
)

from . import declarations as d
from .callbacks import (
    DeriveTrait, EnumVariantValue, ImplementsTrait, IntKind, ParseCallbacks,
)
from .codegen import Bindings, cfunctype
from .errors import ExtractionError
from .macros import evaluate_definition


logger = logging.getLogger(__name__)

PARSE_OPTIONS = (
    TranslationUnit.PARSE_DETAILED_PROCESSING_RECORD
    | TranslationUnit.PARSE_SKIP_FUNCTION_BODIES
)

# C typedef names with a fixed ctypes equivalent
C_TO_CTYPES = {
    "size_t": "c_size_t",
    "ssize_t": "c_ssize_t",
    "int8_t": "c_int8",
    "uint8_t": "c_uint8",
    "int16_t": "c_int16",
    "uint16_t": "c_uint16",
    "int32_t": "c_int32",
    "uint32_t": "c_uint32",
    "int64_t": "c_int64",
    "uint64_t": "c_uint64",
    "uintptr_t": "c_size_t",
    "intptr_t": "c_ssize_t",
    "ptrdiff_t": "c_ssize_t",
    "wchar_t": "c_wchar",
    "va_list": "c_void_p",
    "__builtin_va_list": "c_void_p",
    "__gnuc_va_list": "c_void_p",
}

PRIMITIVE_CTYPES = {
    TypeKind.VOID: "None",
    TypeKind.BOOL: "c_bool",
    TypeKind.CHAR_S: "c_char",
    TypeKind.CHAR_U: "c_char",
    TypeKind.SCHAR: "c_byte",
    TypeKind.UCHAR: "c_ubyte",
    TypeKind.SHORT: "c_short",
    TypeKind.USHORT: "c_ushort",
    TypeKind.INT: "c_int",
    TypeKind.UINT: "c_uint",
    TypeKind.LONG: "c_long",
    TypeKind.ULONG: "c_ulong",
    TypeKind.LONGLONG: "c_longlong",
    TypeKind.ULONGLONG: "c_ulonglong",
    TypeKind.FLOAT: "c_float",
    TypeKind.DOUBLE: "c_double",
    TypeKind.LONGDOUBLE: "c_longdouble",
    TypeKind.WCHAR: "c_wchar",
}

FUNCTION_KINDS = (TypeKind.FUNCTIONPROTO, TypeKind.FUNCTIONNOPROTO)
RECORD_KINDS = (CursorKind.STRUCT_DECL, CursorKind.UNION_DECL)


def is_unnamed(cursor) -> bool:
    """Anonymous records and enums spell as '' or 'struct (unnamed at ...)'."""
    spelling = cursor.spelling
    return not spelling or "(" in spelling


def unwrap_elaborated(t):
    while t.kind == TypeKind.ELABORATED:
        t = t.get_named_type()
    return t


def value_type(t):
    """Strip sugar and array dimensions down to the stored element type."""
    t = unwrap_elaborated(t)
    while t.kind in (TypeKind.CONSTANTARRAY, TypeKind.INCOMPLETEARRAY):
        t = unwrap_elaborated(t.element_type)
    return t


def default_int_kind(value: int) -> IntKind:
    if -2 ** 31 <= value < 2 ** 31:
        return IntKind.INT
    if 0 <= value < 2 ** 32:
        return IntKind.UINT
    if -2 ** 63 <= value < 2 ** 63:
        return IntKind.LONG_LONG
    return IntKind.ULONG_LONG


def format_diagnostic(diag) -> str:
    location = diag.location
    source = location.file.name if location.file else "<unknown>"
    return f"{source}:{location.line}:{location.column}: {diag.spelling}"


INLINE_FLAGS = re.compile(r"^\^?(\(\?[aiLmsux]+\))")


def compile_pattern(pattern: str) -> Pattern:
    """Compile an allow/block pattern; patterns must match the whole name.

    Accepts the ``^(?i)prefix.*`` spelling by hoisting the inline flags to
    the front, where Python requires them.
    """
    flags = ""
    match = INLINE_FLAGS.match(pattern)
    if match:
        flags = match.group(1)
        pattern = pattern[match.end():]
    return re.compile(f"{flags}^(?:{pattern.lstrip('^')})$")


@dataclass
class Options:
    clang_args: List[str] = field(default_factory=list)
    headers: List[Tuple[str, str]] = field(default_factory=list)
    allowlist_functions: List[Pattern] = field(default_factory=list)
    allowlist_types: List[Pattern] = field(default_factory=list)
    allowlist_vars: List[Pattern] = field(default_factory=list)
    allowlist_recursively: bool = True
    blocklist_types: List[Pattern] = field(default_factory=list)
    callbacks: ParseCallbacks = field(default_factory=ParseCallbacks)
    derive_copy: bool = True
    derive_debug: bool = True
    derive_default: bool = False
    prepend_enum_name: bool = True
    translate_enum_integer_types: bool = False
    generate_comments: bool = True
    ctypes_prefix: str = "ctypes"
    link_prefix: str = ""
    raw_lines: List[str] = field(default_factory=list)
    target: Optional[str] = None
    libclang_path: Optional[str] = None


class Builder:
    """Fluent configuration for a single extraction run."""

    def __init__(self):
        self.options = Options()

    def clang_args(self, args: Sequence[str]) -> "Builder":
        self.options.clang_args.extend(args)
        return self

    def header_contents(self, name: str, contents: str) -> "Builder":
        self.options.headers.append((name, contents))
        return self

    def allowlist_function(self, pattern: str) -> "Builder":
        self.options.allowlist_functions.append(compile_pattern(pattern))
        return self

    def allowlist_type(self, pattern: str) -> "Builder":
        self.options.allowlist_types.append(compile_pattern(pattern))
        return self

    def allowlist_var(self, pattern: str) -> "Builder":
        self.options.allowlist_vars.append(compile_pattern(pattern))
        return self

    def allowlist_recursively(self, enabled: bool) -> "Builder":
        self.options.allowlist_recursively = enabled
        return self

    def blocklist_type(self, pattern: str) -> "Builder":
        self.options.blocklist_types.append(compile_pattern(pattern))
        return self

    def parse_callbacks(self, callbacks: ParseCallbacks) -> "Builder":
        self.options.callbacks = callbacks
        return self

    def derive_copy(self, enabled: bool) -> "Builder":
        self.options.derive_copy = enabled
        return self

    def derive_debug(self, enabled: bool) -> "Builder":
        self.options.derive_debug = enabled
        return self

    def derive_default(self, enabled: bool) -> "Builder":
        self.options.derive_default = enabled
        return self

    def prepend_enum_name(self, enabled: bool) -> "Builder":
        self.options.prepend_enum_name = enabled
        return self

    def translate_enum_integer_types(self, enabled: bool) -> "Builder":
        self.options.translate_enum_integer_types = enabled
        return self

    def generate_comments(self, enabled: bool) -> "Builder":
        self.options.generate_comments = enabled
        return self

    def ctypes_prefix(self, module: str) -> "Builder":
        self.options.ctypes_prefix = module
        return self

    def link_prefix(self, prefix: str) -> "Builder":
        self.options.link_prefix = prefix
        return self

    def raw_line(self, line: str) -> "Builder":
        self.options.raw_lines.append(line)
        return self

    def target(self, triple: Optional[str]) -> "Builder":
        self.options.target = triple
        return self

    def libclang(self, path: Optional[str]) -> "Builder":
        self.options.libclang_path = path
        return self

    def command_line_flags(self) -> List[str]:
        args = list(self.options.clang_args)
        if self.options.target:
            args.append(f"--target={self.options.target}")
        for name, _ in self.options.headers[1:]:
            args.extend(["-include", name])
        return args

    def generate(self) -> Bindings:
        """Parse the input unit and extract the allowlisted declarations."""
        tu = parse(self.options, self.command_line_flags())

        extra: Set[str] = set()
        while True:
            extractor = Extractor(self.options, extra)
            extractor.visit(tu.cursor)
            if self.options.allowlist_recursively and not extractor.referenced <= extra:
                extra |= extractor.referenced
                continue
            break

        logger.info("extracted %d declarations", len(extractor.declarations))
        return Bindings(
            declarations=extractor.declarations,
            raw_lines=list(self.options.raw_lines),
            ctypes_prefix=self.options.ctypes_prefix,
            link_prefix=self.options.link_prefix,
        )


def builder() -> Builder:
    return Builder()


def parse(options: Options, args: List[str]):
    """Run libclang over the input unit; any error diagnostic is fatal."""
    if not options.headers:
        raise ExtractionError("no input header given")

    if options.libclang_path and not Config.loaded:
        Config.set_library_file(options.libclang_path)

    try:
        index = Index.create()
    except LibclangError as e:
        raise ExtractionError(f"could not load libclang: {e}")

    main_name = options.headers[0][0]
    logger.debug("clang args: %s", args)
    try:
        tu = index.parse(
            main_name,
            args=args,
            unsaved_files=options.headers,
            options=PARSE_OPTIONS,
        )
    except TranslationUnitLoadError as e:
        raise ExtractionError(f"libclang failed to parse {main_name}: {e}")

    errors = [diag for diag in tu.diagnostics if diag.severity >= Diagnostic.Error]
    if errors:
        raise ExtractionError("\n".join(format_diagnostic(diag) for diag in errors))
    return tu


class Extractor:
    """Walk a translation unit and collect declarations in source order."""

    def __init__(self, options: Options, extra_types: Optional[Set[str]] = None):
        self.options = options
        self.callbacks = options.callbacks
        self.extra_types = extra_types or set()

        self.declarations: List[d.Declaration] = []
        self.records: Dict[str, d.Record] = {}
        self.emitted: Set[str] = set()
        self.macro_values: Dict[str, int] = {}
        # Original names of types referenced but not necessarily allowlisted
        self.referenced: Set[str] = set()

        self.anon_names: Dict[int, str] = {}
        self.nested_names: Dict[int, str] = {}

    # -------------------------------------------------------------------------
    # Policy
    # -------------------------------------------------------------------------

    def rename(self, name: str) -> str:
        return self.callbacks.item_name(name) or name

    @staticmethod
    def _matches(patterns: List[Pattern], name: str) -> bool:
        return any(p.match(name) for p in patterns)

    def is_blocked(self, name: str) -> bool:
        return self._matches(self.options.blocklist_types, name)

    def allowed_type(self, name: str) -> bool:
        if self.is_blocked(name):
            return False
        return name in self.extra_types or self._matches(self.options.allowlist_types, name)

    def allowed_function(self, name: str) -> bool:
        return self._matches(self.options.allowlist_functions, name)

    def allowed_var(self, name: str) -> bool:
        return self._matches(self.options.allowlist_vars, name)

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    def visit(self, root):
        children = list(root.get_children())

        for cursor in children:
            if cursor.kind == CursorKind.TYPEDEF_DECL:
                decl = unwrap_elaborated(cursor.underlying_typedef_type).get_declaration()
                if decl.kind in (*RECORD_KINDS, CursorKind.ENUM_DECL) and is_unnamed(decl):
                    self.anon_names.setdefault(decl.hash, cursor.spelling)

        for cursor in children:
            kind = cursor.kind
            if kind == CursorKind.MACRO_DEFINITION:
                self._visit_macro(cursor)
            elif kind in RECORD_KINDS:
                self._visit_record(cursor)
            elif kind == CursorKind.ENUM_DECL:
                self._visit_enum(cursor)
            elif kind == CursorKind.TYPEDEF_DECL:
                self._visit_typedef(cursor)
            elif kind == CursorKind.FUNCTION_DECL:
                self._visit_function(cursor)
            elif kind == CursorKind.VAR_DECL:
                self._visit_var(cursor)

    def _emit(self, decl: d.Declaration):
        self.declarations.append(decl)
        if decl.name:
            self.emitted.add(decl.name)

    def _comment(self, cursor) -> Optional[str]:
        if not self.options.generate_comments:
            return None
        return cursor.brief_comment or None

    def _visit_macro(self, cursor):
        tokens = list(cursor.get_tokens())
        if not tokens:
            return
        spellings = [tok.spelling for tok in tokens]
        columns = [tok.location.column for tok in tokens]

        value = evaluate_definition(spellings, self.macro_values, columns)
        if value is None:
            return
        original = cursor.spelling
        self.macro_values[original] = value

        if not self.allowed_var(original):
            return
        name = self.rename(original)
        if name in self.emitted:
            return
        kind = self.callbacks.int_macro(original, value) or default_int_kind(value)
        self._emit(d.Constant(name, value, kind.ctype))

    def _visit_record(self, cursor, name: Optional[str] = None):
        if name is None:
            original = self.anon_names.get(cursor.hash) if is_unnamed(cursor) else cursor.spelling
            if not original or not self.allowed_type(original):
                return
            name = self.rename(original)

        kind = "union" if cursor.kind == CursorKind.UNION_DECL else "struct"
        record = self.records.get(name)

        if not cursor.is_definition():
            if record is None:
                record = d.Record(name, kind)
                self.records[name] = record
                self._emit(record)
            return

        if record is not None:
            if record.fields is not None:
                return
            # Forward declared earlier: the layout is emitted at the definition
            self.declarations.remove(record)
        else:
            record = d.Record(name, kind)
            self.records[name] = record

        children = list(cursor.get_children())
        field_decls = {
            value_type(c.type).get_declaration().hash
            for c in children if c.kind == CursorKind.FIELD_DECL and c.spelling
        }

        fields: List[d.Field] = []
        by_value = []
        for child in children:
            if child.kind in RECORD_KINDS and child.is_definition():
                if is_unnamed(child):
                    nested = f"{name}__anon{len(self.nested_names)}"
                    self.nested_names[child.hash] = nested
                    self._visit_record(child, nested)
                    if child.hash not in field_decls:
                        member = f"_anon{len(record.anonymous)}"
                        record.anonymous.append(member)
                        fields.append(d.Field(member, nested))
                        by_value.append(nested)
                else:
                    self._visit_record(child)
            elif child.kind == CursorKind.ENUM_DECL:
                self._visit_enum(child)
            elif child.kind == CursorKind.FIELD_DECL and child.spelling:
                bits = child.get_bitfield_width() if child.is_bitfield() else None
                fields.append(d.Field(child.spelling, self.ctype(child.type), bits))
                by_value.append(child.type)

        record.kind = kind
        record.fields = fields
        record.comment = self._comment(cursor)
        self._derive_traits(record, by_value)
        self._emit(record)

    def _visit_enum(self, cursor):
        original = self.anon_names.get(cursor.hash) if is_unnamed(cursor) else cursor.spelling
        variants = [c for c in cursor.get_children() if c.kind == CursorKind.ENUM_CONSTANT_DECL]

        if original:
            if not self.allowed_type(original):
                return
        elif not any(self.allowed_var(v.spelling) for v in variants):
            return

        name = self.rename(original) if original else None
        if name and name in self.emitted:
            return

        if self.options.translate_enum_integer_types:
            ctype = self.ctype(cursor.enum_type)
        else:
            ctype = "c_int" if any(v.enum_value < 0 for v in variants) else "c_uint"

        enum = d.Enum(name, ctype)
        signed = ctype not in ("c_uint", "c_ulong", "c_ulonglong", "c_ubyte", "c_ushort")
        for variant in variants:
            value = variant.enum_value
            renamed = self.callbacks.enum_variant_name(
                original, variant.spelling, EnumVariantValue(value, signed)
            ) or variant.spelling
            if self.options.prepend_enum_name and name:
                renamed = f"{name}_{renamed}"
            enum.variants.append(d.Constant(renamed, value, name or ctype))
        self._emit(enum)

    def _visit_typedef(self, cursor):
        original = cursor.spelling
        if not self.allowed_type(original):
            return
        name = self.rename(original)
        if name in self.emitted:
            return

        underlying = unwrap_elaborated(cursor.underlying_typedef_type)
        decl = underlying.get_declaration()
        if decl.kind in (*RECORD_KINDS, CursorKind.ENUM_DECL):
            if is_unnamed(decl) or self.rename(decl.spelling) == name:
                return

        if underlying.kind == TypeKind.POINTER:
            pointee = unwrap_elaborated(underlying.get_pointee())
            if pointee.kind not in FUNCTION_KINDS and pointee.get_canonical().kind in FUNCTION_KINDS:
                pointee = pointee.get_canonical()
            if pointee.kind in FUNCTION_KINDS:
                restype, argtypes = self._signature(pointee)
                self._emit(d.FunctionType(name, restype, argtypes))
                return
        if underlying.kind in FUNCTION_KINDS:
            restype, argtypes = self._signature(underlying)
            self._emit(d.FunctionType(name, restype, argtypes))
            return

        self._emit(d.TypeAlias(name, self.ctype(underlying)))

    def _visit_function(self, cursor):
        original = cursor.spelling
        if not self.allowed_function(original):
            return
        name = self.rename(original)
        if name in self.emitted:
            return

        ftype = cursor.type
        if ftype.kind not in FUNCTION_KINDS:
            ftype = ftype.get_canonical()
        restype, argtypes = self._signature(ftype)
        variadic = ftype.kind == TypeKind.FUNCTIONPROTO and ftype.is_function_variadic()
        self._emit(d.Function(
            name, restype, argtypes,
            link_name=self._link_name(original, name),
            variadic=variadic,
            comment=self._comment(cursor),
        ))

    def _visit_var(self, cursor):
        original = cursor.spelling
        if not self.allowed_var(original):
            return
        name = self.rename(original)
        if name in self.emitted:
            return
        self._emit(d.Variable(name, self.ctype(cursor.type), self._link_name(original, name)))

    def _link_name(self, original: str, name: str) -> Optional[str]:
        if original == self.options.link_prefix + name:
            return None
        return original

    # -------------------------------------------------------------------------
    # Traits
    # -------------------------------------------------------------------------

    def _blocklisted_trait(self, original: str, trait: DeriveTrait) -> ImplementsTrait:
        answer = self.callbacks.blocklisted_type_implements_trait(original, trait)
        return answer or ImplementsTrait.NO

    def _derive_traits(self, record: d.Record, by_value):
        copy = self.options.derive_copy
        debug = self.options.derive_debug
        default = "derived" if self.options.derive_default else None

        for t in by_value:
            if isinstance(t, str):
                nested = self.records.get(t)
                copy = copy and nested is not None and nested.copy
                debug = debug and nested is not None and nested.debug
                if nested is None or nested.default is None:
                    default = None
                continue

            t = value_type(t)
            decl = t.get_declaration()
            original = decl.spelling
            if t.kind == TypeKind.TYPEDEF and self.is_blocked(original):
                copy = copy and self._blocklisted_trait(original, DeriveTrait.COPY) != ImplementsTrait.NO
                debug = debug and self._blocklisted_trait(original, DeriveTrait.DEBUG) != ImplementsTrait.NO
                if default is not None:
                    answer = self._blocklisted_trait(original, DeriveTrait.DEFAULT)
                    if answer == ImplementsTrait.NO:
                        default = None
                    elif answer == ImplementsTrait.MANUALLY:
                        default = "manual"
            elif t.get_canonical().kind == TypeKind.RECORD:
                nested = self.records.get(self.record_name(t.get_canonical().get_declaration()))
                if nested is not None:
                    copy = copy and nested.copy
                    debug = debug and nested.debug
                    if nested.default is None:
                        default = None

        record.copy = copy
        record.debug = debug
        record.default = default

    # -------------------------------------------------------------------------
    # Types
    # -------------------------------------------------------------------------

    def _signature(self, t) -> Tuple[str, List[str]]:
        restype = self.ctype(t.get_result())
        if t.kind != TypeKind.FUNCTIONPROTO:
            return restype, []
        return restype, [self.ctype(arg) for arg in t.argument_types()]

    def record_name(self, decl) -> str:
        if not is_unnamed(decl):
            return self._reference(decl.spelling)
        if decl.hash in self.anon_names:
            return self._reference(self.anon_names[decl.hash])
        if decl.hash in self.nested_names:
            return self.nested_names[decl.hash]
        logger.debug("unnamed record outside any typedef, using c_int")
        return "c_int"

    def _reference(self, original: str) -> str:
        self.referenced.add(original)
        return self.rename(original)

    def ctype(self, t) -> str:
        """Spell a clang type as a ctypes expression."""
        kind = t.kind

        if kind in PRIMITIVE_CTYPES:
            return PRIMITIVE_CTYPES[kind]
        elif kind == TypeKind.ELABORATED:
            return self.ctype(t.get_named_type())
        elif kind == TypeKind.TYPEDEF:
            name = t.get_declaration().spelling
            if name in C_TO_CTYPES:
                return C_TO_CTYPES[name]
            if self.is_blocked(name) or self.allowed_type(name):
                return self._reference(name)
            canonical = t.get_canonical()
            if canonical.kind in PRIMITIVE_CTYPES or canonical.kind == TypeKind.POINTER:
                return self.ctype(canonical)
            return self._reference(name)
        elif kind == TypeKind.POINTER:
            return self._pointer(t)
        elif kind == TypeKind.CONSTANTARRAY:
            return f"({self.ctype(t.element_type)} * {t.element_count})"
        elif kind == TypeKind.INCOMPLETEARRAY:
            return f"({self.ctype(t.element_type)} * 0)"
        elif kind == TypeKind.RECORD:
            return self.record_name(t.get_declaration())
        elif kind == TypeKind.ENUM:
            decl = t.get_declaration()
            if not is_unnamed(decl):
                return self._reference(decl.spelling)
            if decl.hash in self.anon_names:
                return self._reference(self.anon_names[decl.hash])
            return self.ctype(decl.enum_type)
        elif kind in FUNCTION_KINDS:
            restype, argtypes = self._signature(t)
            return cfunctype(restype, argtypes)
        else:
            canonical = t.get_canonical()
            if canonical.kind != kind:
                return self.ctype(canonical)
            logger.debug("unsupported type %s (%s), using c_int", t.spelling, kind)
            return "c_int"

    def _pointer(self, t) -> str:
        pointee = unwrap_elaborated(t.get_pointee())
        canonical = pointee.get_canonical()

        if canonical.kind == TypeKind.VOID:
            return "c_void_p"
        if canonical.kind in FUNCTION_KINDS:
            if pointee.kind == TypeKind.TYPEDEF:
                # Function typedefs are already pointer types in ctypes
                return self.ctype(pointee)
            function = pointee if pointee.kind in FUNCTION_KINDS else canonical
            restype, argtypes = self._signature(function)
            return cfunctype(restype, argtypes)
        if pointee.kind in (TypeKind.CHAR_S, TypeKind.CHAR_U):
            return "c_char_p"
        return f"POINTER({self.ctype(pointee)})"
