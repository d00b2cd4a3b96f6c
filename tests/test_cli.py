"""Tests for the command line front end."""

from mbedtls_bindgen import cli


def test_read_headers_file(tmp_path):
    listing = tmp_path / "headers.txt"
    listing.write_text("# enabled\nssl.h\n\nx509.h  # certificates\n")
    assert cli.read_headers_file(listing) == ["ssl.h", "x509.h"]


def test_main_fails_on_duplicate_headers(tmp_path, capsys):
    code = cli.main([
        "--include", str(tmp_path), "--config-h", str(tmp_path / "config.h"),
        "--out-dir", str(tmp_path), "--header", "a.h", "--header", "a.h",
    ])
    assert code == 1
    assert "duplicate header" in capsys.readouterr().err


def test_main_fails_on_extraction_error(mbedtls_tree, capsys, monkeypatch):
    include, config_h, out_dir = mbedtls_tree
    monkeypatch.setenv("CC", "definitely-not-a-compiler")
    code = cli.main([
        "--include", str(include), "--config-h", str(config_h),
        "--out-dir", str(out_dir), "--header", "missing.h",
    ])
    assert code == 1
    assert capsys.readouterr().err.startswith("error:")


def test_main_generates(mbedtls_tree, monkeypatch):
    include, config_h, out_dir = mbedtls_tree
    monkeypatch.setenv("CC", "definitely-not-a-compiler")
    headers = out_dir.parent / "headers.txt"
    headers.write_text("foo.h\n")
    code = cli.main([
        "-I", str(include), "-c", str(config_h), "-o", str(out_dir),
        "--headers-file", str(headers), "-v",
    ])
    assert code == 0
    assert "foo_bar" in (out_dir / "bindings.py").read_text()
