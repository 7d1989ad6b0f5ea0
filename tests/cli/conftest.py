"""Shared fixtures for CLI tests."""

import os

import pytest

CONFIG = """
[system_monitor]
filesystems = [{ mount = "/", max_usage = 99.9 }]

[[schedules]]
operation = "check-disk-usage"

[[schedules]]
operation = "hello"
cron = "0 30 6 * * *"

[[alerts]]
event = "high-disk-usage"
alert_interval = "1h"
mediums = ["log"]

[[alerts]]
name = "hello-digest"
event = "command-output"
alert_type = "digest"
alert_interval = "10m"
mediums = ["log"]

[[commands]]
id = "hello"
command = "echo hello"

[[commands]]
id = "broken"
command = "exit 4"
"""


@pytest.fixture(autouse=True)
def pulse_env(monkeypatch, tmp_path):
    """Point config and data directories at a temporary location."""
    for key in list(os.environ):
        if key.startswith("PULSE_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("PULSE_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("PULSE_DATA_DIR", str(tmp_path / "data"))
    return tmp_path


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "pulse.toml"
    path.write_text(CONFIG)
    return path
