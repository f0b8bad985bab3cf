"""Configuration-consistency checks against the shipped recipe and broken variants."""
import pytest

from tickstack.collector_config import load_collector_config, parse_collector_config
from tickstack.manifest import load_manifest
from tickstack.validation import (
    StackRoles,
    check_alerting_storage_url,
    check_bind_mounts,
    check_collector_output,
    check_dependencies_resolve,
    check_host_ports_unique,
    check_named_volumes,
    check_port_ranges,
    check_roles_defined,
    resolve_storage_url,
    validate_stack,
)
from conftest import RECIPE_COMPOSE, RECIPE_TELEGRAF


@pytest.fixture
def shipped():
    return load_manifest(str(RECIPE_COMPOSE), environ={}), load_collector_config(str(RECIPE_TELEGRAF))


def _collector(url="http://influxdb:8086", database="telegraf"):
    return parse_collector_config({"outputs": {"influxdb": [{"urls": [url], "database": database}]}})


def test_shipped_recipe_passes_every_check(shipped):
    manifest, collector = shipped
    report = validate_stack(manifest, collector)

    assert report.passed, report.failures()
    names = [check.name for check in report.checks]
    assert "Dependencies resolve" in names
    assert "Collector output reaches storage" in names
    assert "Named volumes declared once" in names
    assert "Host ports unique" in names
    assert report.to_dict()["passed"] is True


def test_undefined_dependency_fails(write_compose):
    path = write_compose(RECIPE_COMPOSE.read_text().replace("      - influxdb\n", "      - influx\n", 1))
    manifest = load_manifest(str(path), environ={})

    result = check_dependencies_resolve(manifest)
    assert not result.passed
    assert "telegraf -> influx" in result.message

    report = validate_stack(manifest, _collector())
    failed = {check.name for check in report.failures()}
    assert failed == {"Dependencies resolve", "Start order defined"}


@pytest.mark.parametrize("url,fragment", [
    ("http://influx:8086", "not a service"),
    ("http://grafana:3000", "not the storage service"),
    ("http://influxdb:9999", "port 9999 is not exposed"),
    ("udp://influxdb:8089", "not a valid http(s) URL"),
])
def test_collector_url_must_reach_storage(shipped, url, fragment):
    manifest, _ = shipped
    result = check_collector_output(manifest, _collector(url), StackRoles())
    assert not result.passed
    assert fragment in result.message


def test_collector_url_may_use_container_name(write_compose):
    path = write_compose(RECIPE_COMPOSE.read_text().replace("container_name: influxdb", "container_name: tsdb"))
    manifest = load_manifest(str(path), environ={})
    assert check_collector_output(manifest, _collector("http://tsdb:8086"), StackRoles()).passed


def test_collector_without_database_or_output(shipped):
    manifest, _ = shipped
    assert not check_collector_output(manifest, _collector(database=None), StackRoles()).passed
    assert not check_collector_output(manifest, parse_collector_config({}), StackRoles()).passed


def test_resolve_storage_url_default_port(shipped):
    manifest, _ = shipped
    ok, message = resolve_storage_url(manifest, "http://influxdb", "influxdb")
    assert not ok
    assert "port 80" in message


def test_alerting_engine_flag_and_url(write_compose):
    text = RECIPE_COMPOSE.read_text()

    disabled = load_manifest(str(write_compose(text.replace("ENABLED=true", "ENABLED=false"))), environ={})
    result = check_alerting_storage_url(disabled, StackRoles())
    assert not result.passed
    assert "expected true" in result.message

    wrong_url = load_manifest(str(write_compose(text.replace("URLS_0=http://influxdb:8086", "URLS_0=http://localhost:8086"))), environ={})
    assert not check_alerting_storage_url(wrong_url, StackRoles()).passed


def test_undeclared_named_volume(write_compose):
    text = RECIPE_COMPOSE.read_text().replace("  grafana_data:\n", "")
    manifest = load_manifest(str(write_compose(text)), environ={})

    result = check_named_volumes(manifest)
    assert not result.passed
    assert "not declared: grafana_data" in result.message


def test_volume_declared_twice(write_compose):
    text = RECIPE_COMPOSE.read_text() + "  influxdb_data:\n"
    manifest = load_manifest(str(write_compose(text)), environ={})

    result = check_named_volumes(manifest)
    assert not result.passed
    assert "declared more than once: influxdb_data" in result.message


def test_unused_volume_reported_but_passes(write_compose):
    text = RECIPE_COMPOSE.read_text() + "  spare:\n"
    manifest = load_manifest(str(write_compose(text)), environ={})

    result = check_named_volumes(manifest)
    assert result.passed
    assert "unused: spare" in result.message


def test_duplicate_host_port(write_compose):
    text = RECIPE_COMPOSE.read_text().replace('"3001:3000"', '"9092:3000"')
    manifest = load_manifest(str(write_compose(text)), environ={})

    result = check_host_ports_unique(manifest)
    assert not result.passed
    assert "9092/tcp: kapacitor and grafana" in result.message


def test_same_port_on_distinct_host_ips_is_allowed(write_compose):
    text = RECIPE_COMPOSE.read_text()
    text = text.replace('"9092:9092"', '"127.0.0.1:9000:9092"').replace('"3001:3000"', '"127.0.0.2:9000:3000"')
    manifest = load_manifest(str(write_compose(text)), environ={})
    assert check_host_ports_unique(manifest).passed


def test_port_out_of_range(write_compose):
    text = RECIPE_COMPOSE.read_text().replace('"3001:3000"', '"70000:3000"')
    manifest = load_manifest(str(write_compose(text)), environ={})

    result = check_port_ranges(manifest)
    assert not result.passed
    assert "grafana: host port 70000" in result.message


def test_missing_bind_mount_source(recipe_dir):
    (recipe_dir / "telegraf" / "telegraf.conf").unlink()
    manifest = load_manifest(str(recipe_dir / "docker-compose.yml"), environ={})

    result = check_bind_mounts(manifest)
    assert not result.passed
    assert "./telegraf/telegraf.conf" in result.message


def test_roles_must_map_to_services(shipped):
    manifest, _ = shipped
    result = check_roles_defined(manifest, StackRoles(dashboard="chronograf"))
    assert not result.passed
    assert "dashboard=chronograf" in result.message
