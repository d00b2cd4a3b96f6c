"""Tests for ctypes source generation."""

import copy
import ctypes

import pytest

from mbedtls_bindgen.codegen import Bindings, cfunctype
from mbedtls_bindgen.declarations import (
    Constant, Enum, Field, Function, FunctionType, Record, TypeAlias, Variable,
)


def sample_bindings():
    return Bindings(
        declarations=[
            Constant("SMALL", 2147483647, "c_int"),
            Constant("BIG", 2147483648, "c_longlong"),
            Enum("mode_t", "c_uint", [
                Constant("MODE_A", 0, "mode_t"),
                Constant("MODE_B", 1, "mode_t"),
            ]),
            Record("opaque", "struct"),
            Record("foo", "struct", [Field("a", "c_int"), Field("when", "time_t")],
                   copy=True, default="manual"),
            Record("u", "union", [Field("a", "c_int"), Field("b", "(c_ubyte * 4)")],
                   copy=True, default="derived"),
            Record("flags", "struct", [Field("x", "c_uint", 3), Field("y", "c_uint", 5)],
                   debug=True),
            TypeAlias("u_t", "u"),
            FunctionType("cb_t", "c_int", ["c_void_p", "c_int"]),
            Function("foo_bar", "c_int", ["POINTER(foo)", "cb_t"]),
            Function("printf_like", "c_int", ["c_char_p"], link_name="printf_like_impl",
                     variadic=True),
            Variable("version", "c_int"),
        ],
        raw_lines=["# flake8: noqa"],
        link_prefix="mbedtls_",
    )


def load(source):
    namespace = {}
    exec(compile(source, "bindings.py", "exec"), namespace)
    namespace["time_t"] = ctypes.c_long
    namespace["_finish"]()
    return namespace


def test_cfunctype():
    assert cfunctype("None") == "CFUNCTYPE(None)"
    assert cfunctype("c_int", ["c_void_p", "c_int"]) == "CFUNCTYPE(c_int, c_void_p, c_int)"


def test_source_layout():
    source = sample_bindings().to_string()
    assert source.startswith("# flake8: noqa\n")
    assert "SMALL: c_int = 2147483647" in source
    assert "BIG: c_longlong = 2147483648" in source
    assert "mode_t = c_uint" in source
    assert "MODE_B: mode_t = 1" in source
    assert "class opaque(Structure): pass" in source
    assert "class u(Union):" in source
    assert "    ('b', (c_ubyte * 4))," in source
    assert "    ('x', c_uint, 3)," in source
    assert "foo_bar = _Prototype('foo_bar', None, c_int, [POINTER(foo), cb_t])" in source
    assert "_LINK_PREFIX = 'mbedtls_'" in source
    # Forward declarations precede every layout
    assert source.index("class foo(Structure):") < source.index("foo._fields_")


def test_generated_module_runs():
    ns = load(sample_bindings().to_string())

    assert ns["SMALL"] == 2 ** 31 - 1
    assert ns["MODE_B"] == 1
    assert ns["mode_t"] is ctypes.c_uint
    assert ns["u_t"] is ns["u"]
    assert ctypes.sizeof(ns["u"]) == 4
    assert ctypes.sizeof(ns["flags"]) == ctypes.sizeof(ctypes.c_uint)


def test_record_traits():
    ns = load(sample_bindings().to_string())
    foo = ns["foo"].default()
    assert foo.a == 0 and foo.when == 0

    foo.a = 5
    clone = copy.copy(foo)
    clone.a = 6
    assert foo.a == 5

    assert isinstance(ns["u"].default(), ns["u"])
    assert not hasattr(ns["flags"], "default")
    assert repr(ns["flags"]()) == "flags(x=0, y=0)"


def test_prototypes_bind_lazily():
    ns = load(sample_bindings().to_string())
    foo_bar = ns["foo_bar"]
    assert foo_bar.link_name == "mbedtls_foo_bar"
    assert ns["printf_like"].link_name == "printf_like_impl"
    assert ns["version"].link_name == "mbedtls_version"
    with pytest.raises(RuntimeError):
        foo_bar(None, None)


def test_empty_bindings():
    source = Bindings().to_string()
    assert "Forward Declarations" not in source
    load(source)


def test_platform_types_are_looked_up_late():
    """Names from the types module only need to exist when _finish() runs."""
    ns = {}
    exec(compile(sample_bindings().to_string(), "bindings.py", "exec"), ns)
    assert "foo_bar" not in ns
    with pytest.raises(NameError):
        ns["_finish"]()

    ns["time_t"] = ctypes.c_longlong
    ns["_finish"]()
    assert dict((f[0], f[1]) for f in ns["foo"]._fields_)["when"] is ctypes.c_longlong
    assert ns["foo_bar"].argtypes[1] is ns["cb_t"]
