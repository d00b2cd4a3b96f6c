"""Tests for the naming and trait policy."""

import pytest

from mbedtls_bindgen.callbacks import (
    DeriveTrait, EnumVariantValue, ImplementsTrait, IntKind, MbedtlsParseCallbacks,
    ParseCallbacks,
)


@pytest.fixture
def callbacks():
    return MbedtlsParseCallbacks()


@pytest.mark.parametrize("original, expected", [
    ("mbedtls_ssl_init", "ssl_init"),
    ("MBEDTLS_ERR_SSL_ALLOC_FAILED", "ERR_SSL_ALLOC_FAILED"),
    ("mbedtls_MBEDTLS_odd", "odd"),
    ("mbedtls_mbedtls_twice", "twice"),
    ("ssl_init", "ssl_init"),
    ("Mbedtls_mixed", "Mbedtls_mixed"),
])
def test_item_name(callbacks, original, expected):
    assert callbacks.item_name(original) == expected


@pytest.mark.parametrize("name", [
    "mbedtls_ssl_context", "MBEDTLS_SSL_VERIFY_NONE", "cipher_id_t", "",
])
def test_item_name_idempotent(callbacks, name):
    """Stripping an already stripped name changes nothing."""
    once = callbacks.item_name(name)
    assert callbacks.item_name(once) == once


def test_enum_variant_name_delegates(callbacks):
    value = EnumVariantValue(3)
    assert callbacks.enum_variant_name("mbedtls_md_type_t", "MBEDTLS_MD_SHA256", value) == "MD_SHA256"


@pytest.mark.parametrize("value, kind", [
    (0, IntKind.INT),
    (2 ** 31 - 1, IntKind.INT),
    (-2 ** 31, IntKind.INT),
    (2 ** 31, IntKind.LONG_LONG),
    (-2 ** 31 - 1, IntKind.LONG_LONG),
    (0xffffffff, IntKind.LONG_LONG),
])
def test_int_macro_width(callbacks, value, kind):
    assert callbacks.int_macro("MBEDTLS_X", value) == kind


def test_int_kind_ctype():
    assert IntKind.INT.ctype == "c_int"
    assert IntKind.LONG_LONG.ctype == "c_longlong"


def test_blocklisted_default_is_manual(callbacks):
    assert (callbacks.blocklisted_type_implements_trait("mbedtls_time_t", DeriveTrait.DEFAULT)
            == ImplementsTrait.MANUALLY)
    assert (callbacks.blocklisted_type_implements_trait("mbedtls_time_t", DeriveTrait.COPY)
            == ImplementsTrait.YES)
    assert (callbacks.blocklisted_type_implements_trait("mbedtls_time_t", DeriveTrait.DEBUG)
            == ImplementsTrait.YES)


def test_base_callbacks_have_no_opinion():
    callbacks = ParseCallbacks()
    assert callbacks.item_name("mbedtls_x") is None
    assert callbacks.int_macro("X", 1) is None
    assert callbacks.blocklisted_type_implements_trait("t", DeriveTrait.COPY) is None
