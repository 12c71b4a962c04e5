"""Tests for solarmon.conf parsing."""

import os

import pytest

from solarmon.env import _load_config_file, _parse_config_value


@pytest.fixture
def write_config(tmp_path):
    """Write config content and return its path."""
    path = tmp_path / "solarmon.conf"

    def write(content: str):
        path.write_text(content)
        return path

    return write


@pytest.fixture
def scratch_keys(monkeypatch):
    """Keys the file tests may set; removed again afterwards."""
    keys = ["CONF_TEST_A", "CONF_TEST_B", "CONF_TEST_C", "_CONF_PRIVATE"]
    for key in keys:
        monkeypatch.delenv(key, raising=False)
    yield keys
    for key in keys:
        os.environ.pop(key, None)


class TestParseConfigValue:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("", ""),
            ("   ", ""),
            ("\t\t", ""),
            ("hello", "hello"),
            ("  hello  ", "hello"),
            ("hello world", "hello world"),
            ("/dev/ttyUSB0", "/dev/ttyUSB0"),
            ("https://example.com:8080/path", "https://example.com:8080/path"),
        ],
    )
    def test_unquoted(self, raw, expected):
        assert _parse_config_value(raw) == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ('"hello"', "hello"),
            ('"hello world"', "hello world"),
            ('"hello #world"', "hello #world"),
            ('"hello', "hello"),
            ('""', ""),
            ('"hello" # comment', "hello"),
            ("'hello world'", "hello world"),
            ("'hello", "hello"),
            ("''", ""),
        ],
    )
    def test_quoted(self, raw, expected):
        assert _parse_config_value(raw) == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("hello # comment", "hello"),
            ("hello   # comment here", "hello"),
            ("color#ffffff", "color#ffffff"),
            ("#ffffff", "#ffffff"),
            ("test#", "test#"),
        ],
    )
    def test_inline_comments(self, raw, expected):
        assert _parse_config_value(raw) == expected


class TestLoadConfigFile:
    def test_missing_file(self, tmp_path):
        assert _load_config_file(tmp_path / "nope.conf") == 0

    def test_loads_values(self, write_config, scratch_keys):
        path = write_config('CONF_TEST_A=tcp\nCONF_TEST_B="with spaces"\n')
        assert _load_config_file(path) == 2
        assert os.environ["CONF_TEST_A"] == "tcp"
        assert os.environ["CONF_TEST_B"] == "with spaces"

    def test_skips_comments_blanks_and_junk(self, write_config, scratch_keys):
        path = write_config(
            "# comment\n"
            "\n"
            "this line has no equals\n"
            "has-dash=1\n"
            "CONF_TEST_A=1\n"
        )
        assert _load_config_file(path) == 1
        assert os.environ["CONF_TEST_A"] == "1"

    def test_export_prefix(self, write_config, scratch_keys):
        path = write_config("export CONF_TEST_C=yes\n_CONF_PRIVATE = x\n")
        _load_config_file(path)
        assert os.environ["CONF_TEST_C"] == "yes"
        assert os.environ["_CONF_PRIVATE"] == "x"

    def test_env_takes_precedence(self, write_config, scratch_keys, monkeypatch):
        monkeypatch.setenv("CONF_TEST_A", "from-env")
        path = write_config("CONF_TEST_A=from-file\n")
        assert _load_config_file(path) == 0
        assert os.environ["CONF_TEST_A"] == "from-env"
