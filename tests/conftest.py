import subprocess

import pytest


FOO_H = """\
#define MBEDTLS_SMALL 0x7fffffff
#define MBEDTLS_BIG 0x80000000
#define MBEDTLS_NEG (-0x7080)
#define MBEDTLS_DERIVED (MBEDTLS_SMALL >> 16)
#define MBEDTLS_MAX(a, b) ((a) > (b) ? (a) : (b))

typedef long mbedtls_time_t;

typedef struct mbedtls_foo {
    int a;
    mbedtls_time_t when;
} mbedtls_foo;

typedef union mbedtls_u {
    int a;
    unsigned char b[4];
} mbedtls_u;

typedef enum {
    MBEDTLS_MODE_A = 0,
    MBEDTLS_MODE_B,
} mbedtls_mode_t;

int mbedtls_foo_bar(mbedtls_foo *foo, int (*cb)(void *, int));
int other_function(void);
"""


class FakeCompiler:
    """Stands in for subprocess.run when probing the C compiler."""

    def __init__(self, banner=b"gcc (GCC) 13.2.0\n", sysroot=b"/opt/sysroot\n",
                 fail_sysroot=False):
        self.banner = banner
        self.sysroot = sysroot
        self.fail_sysroot = fail_sysroot
        self.calls = []

    def __call__(self, cmd, capture_output=False, **kwargs):
        self.calls.append(list(cmd))
        if cmd[-1] == "--version":
            return subprocess.CompletedProcess(cmd, 0, stdout=self.banner, stderr=b"")
        if cmd[-1] == "--print-sysroot":
            if self.fail_sysroot:
                raise FileNotFoundError(cmd[0])
            return subprocess.CompletedProcess(cmd, 0, stdout=self.sysroot, stderr=b"")
        raise AssertionError(f"unexpected command {cmd}")


@pytest.fixture
def fake_cc():
    return FakeCompiler()


@pytest.fixture
def mbedtls_tree(tmp_path):
    """A minimal include tree with one header and a config file."""
    include = tmp_path / "include"
    (include / "mbedtls").mkdir(parents=True)
    (include / "mbedtls" / "foo.h").write_text(FOO_H)
    config_h = tmp_path / "config.h"
    config_h.write_text("/* empty */\n")
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    return include, config_h, out_dir
