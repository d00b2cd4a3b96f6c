"""Tests for the virtual input unit."""

import pytest

from mbedtls_bindgen.errors import ConfigurationError
from mbedtls_bindgen.headers import HeaderList, StaticHeaders, aggregate


def test_aggregate_keeps_order():
    """One include per header, in list order."""
    unit = aggregate(["a.h", "b.h", "c.h"])
    assert unit.splitlines() == [
        "#include <mbedtls/a.h>",
        "#include <mbedtls/b.h>",
        "#include <mbedtls/c.h>",
    ]


def test_aggregate_empty():
    """An empty header list yields an empty unit."""
    assert aggregate([]) == ""


def test_header_list_rejects_duplicates():
    with pytest.raises(ConfigurationError):
        HeaderList(["ssl.h", "x509.h", "ssl.h"])


def test_static_headers():
    provider = StaticHeaders(["config.h", "ssl.h"])
    assert list(provider.enabled_ordered()) == ["config.h", "ssl.h"]
