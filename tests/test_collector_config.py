"""Tests for the Telegraf configuration reader."""
import pytest

from tickstack.collector_config import load_collector_config, parse_collector_config, parse_duration
from tickstack.errors import CollectorConfigError
from conftest import RECIPE_TELEGRAF


def test_shipped_agent_settings():
    collector = load_collector_config(str(RECIPE_TELEGRAF))
    agent = collector.agent

    assert agent.interval == 10.0
    assert agent.flush_interval == 10.0
    assert agent.round_interval is True
    assert agent.metric_batch_size == 1000
    assert agent.metric_buffer_limit == 10000
    assert agent.collection_jitter == 0.0
    assert agent.omit_hostname is False


def test_shipped_output_and_inputs():
    collector = load_collector_config(str(RECIPE_TELEGRAF))

    assert len(collector.outputs) == 1
    sink = collector.outputs[0]
    assert sink.kind == "influxdb"
    assert sink.urls == ["http://influxdb:8086"]
    assert sink.database == "telegraf"
    assert collector.storage_urls() == ["http://influxdb:8086"]

    assert collector.input_kinds() == ["cpu", "mem", "disk", "system"]
    assert collector.inputs[0].options == {"percpu": True, "totalcpu": True}


@pytest.mark.parametrize("value,seconds", [
    ("10s", 10.0),
    ("1m30s", 90.0),
    ("500ms", 0.5),
    ("1h", 3600.0),
    ("", 0.0),
    ("0", 0.0),
    (15, 15.0),
])
def test_parse_duration(value, seconds):
    assert parse_duration(value) == pytest.approx(seconds)


@pytest.mark.parametrize("value", ["10", "10x", "s10", "1m 30s"])
def test_parse_duration_rejects_malformed(value):
    with pytest.raises(CollectorConfigError):
        parse_duration(value)


def test_single_table_output_and_string_url():
    collector = parse_collector_config({
        "outputs": {"influxdb": {"urls": "http://db:8086", "database": "metrics", "timeout": "5s"}},
        "inputs": {"mem": {}},
    })
    assert collector.outputs[0].urls == ["http://db:8086"]
    assert collector.outputs[0].options == {"timeout": "5s"}
    assert collector.agent.interval == 10.0


def test_invalid_agent_duration():
    with pytest.raises(CollectorConfigError, match="Invalid duration"):
        parse_collector_config({"agent": {"interval": "soon"}})


def test_invalid_toml(tmp_path):
    path = tmp_path / "telegraf.conf"
    path.write_text("[agent\ninterval = 10s\n")
    with pytest.raises(CollectorConfigError, match="Invalid TOML"):
        load_collector_config(str(path))


def test_missing_file(tmp_path):
    with pytest.raises(CollectorConfigError, match="not found"):
        load_collector_config(str(tmp_path / "telegraf.conf"))
