# tests/test_config.py
import pytest

from pathprobe.config import Settings
from pathprobe.errors import ConfigurationError
from pathprobe.results import Target


def test_defaults():
    s = Settings()
    assert s.target == Target("10.0.0.2", 862)
    assert s.ipv6_target is None
    assert s.output_format == "text"
    assert s.significance_pct == 10.0


def test_from_env_reads_variables():
    env = {
        "RESPONDER_IP": "192.168.1.50",
        "RESPONDER_PORT": "5000",
        "IPV6_RESPONDER": "2001:db8::50",
        "CPU_PIN": "3",
        "LOG_FORMAT": "json",
        "PROBE_TIMEOUT_S": "0.25",
        "RESULTS_DIR": "",
    }
    s = Settings.from_env(env, dotenv=False)
    assert s.target == Target("192.168.1.50", 5000)
    assert str(s.ipv6_target) == "[2001:db8::50]:5000"
    assert s.cpu_pin == 3
    assert s.output_format == "json"
    assert s.probe_timeout_s == 0.25
    # empty values fall back to defaults
    assert s.results_dir == "./twampy-results"


def test_overrides_win_unless_none():
    env = {"RESPONDER_IP": "192.168.1.50", "LOG_FORMAT": "csv"}
    s = Settings.from_env(env, dotenv=False, responder_ip="10.9.9.9", output_format=None)
    assert s.responder_ip == "10.9.9.9"
    assert s.output_format == "csv"


@pytest.mark.parametrize("env", [
    {"RESPONDER_PORT": "not-a-port"},
    {"RESPONDER_PORT": "70000"},
    {"LOG_FORMAT": "xml"},
    {"PROBE_TIMEOUT_S": "0"},
])
def test_bad_values_raise_configuration_error(env):
    with pytest.raises(ConfigurationError):
        Settings.from_env(env, dotenv=False)


def test_unknown_override_rejected():
    with pytest.raises(ConfigurationError):
        Settings.from_env({}, dotenv=False, colour="blue")
