"""Typed declarations produced by extraction, in source order."""

from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass
class Constant:
    name: str
    value: int
    ctype: str


@dataclass
class TypeAlias:
    name: str
    target: str


@dataclass
class Enum:
    """An enum in constant style: an integer alias plus one constant per variant."""
    name: Optional[str]
    ctype: str
    variants: List[Constant] = field(default_factory=list)


@dataclass
class FunctionType:
    name: str
    restype: str
    argtypes: List[str] = field(default_factory=list)


@dataclass
class Field:
    name: str
    ctype: str
    bits: Optional[int] = None


@dataclass
class Record:
    name: str
    kind: str  # "struct" or "union"
    fields: Optional[List[Field]] = None  # None for opaque records
    anonymous: List[str] = field(default_factory=list)
    copy: bool = False
    debug: bool = False
    default: Optional[str] = None  # "derived", "manual" or None
    comment: Optional[str] = None

    @property
    def base(self) -> str:
        return "Union" if self.kind == "union" else "Structure"


@dataclass
class Function:
    name: str
    restype: str
    argtypes: List[str] = field(default_factory=list)
    link_name: Optional[str] = None
    variadic: bool = False
    comment: Optional[str] = None


@dataclass
class Variable:
    name: str
    ctype: str
    link_name: Optional[str] = None


Declaration = Union[Constant, TypeAlias, Enum, FunctionType, Record, Function, Variable]
