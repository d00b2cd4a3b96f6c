"""
Deprecated union accessors.

Older releases exposed union members as methods returning a pointer into the
union. The generated module now exposes plain fields, so these accessors are
synthesized after the fact by walking the generated source with ``ast``.
They are attached to each union as a ``legacy`` view, because a method can
not share its name with a ctypes field on the same class. A union with a
field named ``legacy`` gets the view as ``legacy_`` instead.
"""

import ast
import keyword
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .errors import ExtractionError


logger = logging.getLogger(__name__)

VIEW_ATTRIBUTE = "legacy"


@dataclass
class UnionDescriptor:
    name: str
    fields: List[Tuple[str, str]] = field(default_factory=list)


def _base_name(node: ast.expr) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return ""


class UnionCollector(ast.NodeVisitor):
    """Collect every ctypes Union class and its ``_fields_`` in order."""

    def __init__(self):
        self.unions: Dict[str, UnionDescriptor] = {}

    def visit_ClassDef(self, node: ast.ClassDef):
        if any(_base_name(base) == "Union" for base in node.bases):
            self.unions.setdefault(node.name, UnionDescriptor(node.name))
        self.generic_visit(node)

    def visit_Assign(self, node: ast.Assign):
        for target in node.targets:
            if (isinstance(target, ast.Attribute) and target.attr == "_fields_"
                    and isinstance(target.value, ast.Name)
                    and target.value.id in self.unions
                    and isinstance(node.value, (ast.List, ast.Tuple))):
                descriptor = self.unions[target.value.id]
                descriptor.fields = [
                    (entry.elts[0].value, ast.unparse(entry.elts[1]))
                    for entry in node.value.elts
                    if isinstance(entry, ast.Tuple) and isinstance(entry.elts[0], ast.Constant)
                ]
        self.generic_visit(node)


def collect_unions(source: str) -> List[UnionDescriptor]:
    try:
        tree = ast.parse(source)
    except SyntaxError as e:
        raise ExtractionError(f"generated bindings are not valid Python: {e}")
    collector = UnionCollector()
    collector.visit(tree)
    return list(collector.unions.values())


def view_attribute(descriptor: UnionDescriptor) -> str:
    """Name the view attribute so that it does not hide a field."""
    names = {name for name, _ in descriptor.fields}
    attribute = VIEW_ATTRIBUTE
    while attribute in names:
        attribute += "_"
    if attribute != VIEW_ATTRIBUTE:
        logger.warning("%s has a field named %r, legacy accessors are on %r",
                       descriptor.name, VIEW_ATTRIBUTE, attribute)
    return attribute


def _accessor(union: str, attribute: str, name: str, ctype: str) -> List[str]:
    if keyword.iskeyword(name):
        method, offset = f"_{name}", f"getattr({union}, {name!r}).offset"
    else:
        method, offset = name, f"{union}.{name}.offset"
    return [
        f"    def {method}(self):",
        "        warnings.warn(",
        f"            \"{union}.{attribute}.{name}() is deprecated, use the {name} field\",",
        "            DeprecationWarning, stacklevel=2)",
        f"        return ctypes.pointer(({ctype}).from_buffer(self._union, {offset}))",
        "",
    ]


def union_accessors(descriptor: UnionDescriptor) -> str:
    view = f"_{descriptor.name}_legacy"
    attribute = view_attribute(descriptor)
    lines = [
        f"class {view}:",
        f"    \"\"\"Method-style accessors for {descriptor.name} fields.\"\"\"",
        "",
        "    __slots__ = (\"_union\",)",
        "",
        "    def __init__(self, union):",
        "        self._union = union",
        "",
    ]
    renamed = []
    for name, ctype in descriptor.fields:
        lines.extend(_accessor(descriptor.name, attribute, name, ctype))
        if keyword.iskeyword(name):
            renamed.append(name)

    lines.append("")
    for name in renamed:
        lines.append(f"setattr({view}, {name!r}, {view}._{name})")
    lines.append(f"{descriptor.name}.{attribute} = property({view})")
    lines.append("")
    return "\n".join(lines) + "\n"


def generate_deprecated_union_accessors(bindings: str) -> str:
    """Add method-style union accessors. These are deprecated and can be
    deleted with the next major version bump.
    """
    descriptors = [u for u in collect_unions(bindings) if u.fields]
    if not descriptors:
        return ""
    blocks = ["\nimport warnings\n\n"]
    for descriptor in descriptors:
        blocks.append("\n" + union_accessors(descriptor))
    return "".join(blocks)
