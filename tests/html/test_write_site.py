"""Tests for the static site renderer."""

import pytest

from solarmon.calibration import Method
from solarmon.db import DeviceRecord, insert_calibration_sample, replace_device_history
from solarmon.html import build_page_context, get_jinja_env, render_index, write_site


def device_row(data_time: str, percentage: int) -> DeviceRecord:
    return DeviceRecord(
        device_sn="SN123",
        data_time=data_time,
        pv_input_power_w=1250.0,
        battery_power_w=-300.5,
        battery_voltage_v=12.4,
        ac_output_voltage=230.0,
        ac_output_current=2.0,
        load_power_w=460.0,
        battery_percentage=percentage,
    )


@pytest.fixture
def populated_db(initialized_db):
    insert_calibration_sample(10.0, 0, initialized_db)
    insert_calibration_sample(14.0, 100, initialized_db)
    replace_device_history(
        [device_row("2024-01-15 10:00:00", 58), device_row("2024-01-15 10:05:00", 60)],
        initialized_db,
    )
    return initialized_db


class TestJinjaEnv:
    def test_singleton(self):
        assert get_jinja_env() is get_jinja_env()

    def test_filters_registered(self):
        filters = get_jinja_env().filters
        for name in ("format_voltage", "format_percentage", "format_power", "format_method"):
            assert name in filters

    def test_autoescape(self):
        template = get_jinja_env().from_string("{{ value }}")
        assert template.render(value="<b>") == "&lt;b&gt;"


class TestPageContext:
    def test_populated(self, populated_db):
        context = build_page_context(populated_db)

        assert context["title"] == "Solar Battery Monitor"
        assert context["method"] == Method.LINEAR
        assert context["sample_count"] == 2
        assert context["latest"].battery_percentage == 60
        assert len(context["history"]) == 2

    def test_empty(self, initialized_db):
        context = build_page_context(initialized_db)

        assert context["method"] == Method.FALLBACK
        assert context["samples"] == []
        assert context["latest"] is None

    def test_history_page_size(self, populated_db, monkeypatch):
        monkeypatch.setenv("HISTORY_PAGE_SIZE", "1")
        import solarmon.env

        solarmon.env._config = None
        assert len(build_page_context(populated_db)["history"]) == 1


class TestRenderIndex:
    def test_populated(self, populated_db):
        html = render_index(build_page_context(populated_db))

        assert "<h1>Solar Battery Monitor</h1>" in html
        assert "60%" in html
        assert "Linear regression over 2 samples." in html
        assert "12.40 V" in html
        assert "1.25 kW" in html
        assert "assets/calibration_dark.svg" in html
        assert "assets/battery_history_light.svg" in html

    def test_empty(self, initialized_db):
        html = render_index(build_page_context(initialized_db))
        assert "No device history collected yet." in html
        assert "over 0 samples." in html

    def test_title_escaped(self, initialized_db, monkeypatch):
        monkeypatch.setenv("SITE_TITLE", "Cabin <Battery>")
        import solarmon.env

        solarmon.env._config = None
        html = render_index(build_page_context(initialized_db))
        assert "Cabin &lt;Battery&gt;" in html


class TestWriteSite:
    def test_writes_index(self, populated_db, tmp_out_dir):
        paths = write_site(populated_db, tmp_out_dir)

        assert paths == [tmp_out_dir / "index.html"]
        assert "<html" in paths[0].read_text()

    def test_default_out_dir(self, populated_db, configured_env):
        paths = write_site(populated_db)
        assert paths[0].parent == configured_env["out_dir"]
