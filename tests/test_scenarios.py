# tests/test_scenarios.py
import pytest

from pathprobe import scenarios
from pathprobe.brain.scenario import ConcurrentScenario, SequentialScenario, SweepScenario
from pathprobe.profile import AddressFamily, Fragmentation, TrafficClass


def test_catalog_profiles_fit_a_standard_path():
    """Every catalog session passes the MTU check on a 1500-byte path (jumbo carries its own)."""
    for name, sc in scenarios.SCENARIOS.items():
        assert sc.name == name
        assert sc.description
        for profile in sc.profiles():
            profile.check_path_mtu(1500)


def test_suite_names_exist():
    assert set(scenarios.SUITE) <= set(scenarios.SCENARIOS)
    assert "overnight" not in scenarios.SUITE


def test_order_entry_is_ef_at_1000pps():
    p = scenarios.get("order_entry").profiles()[0]
    assert p.traffic_class is TrafficClass.EF
    assert p.rate_pps == pytest.approx(1000.0)
    assert p.packet_size == 142


def test_qos_scenario_is_concurrent_flood_plus_probe():
    sc = scenarios.get("qos")
    assert isinstance(sc, ConcurrentScenario)
    assert sc.pattern == "concurrent"
    assert sc.background.profile.traffic_class is TrafficClass.CS0
    assert sc.foreground.profile.traffic_class is TrafficClass.EF


def test_eod_has_30s_silence_between_phases():
    sc = scenarios.get("eod")
    assert isinstance(sc, SequentialScenario)
    assert [s.gap_before_s for s in sc.sessions()] == [0.0, 30.0]


def test_ttl_sweep_roles_and_fragmentation():
    sc = scenarios.get("ttl_sweep")
    assert isinstance(sc, SweepScenario)
    sessions = sc.sessions()
    assert sessions[0].role == "ttl=1"
    assert [s.profile.ttl for s in sessions] == list(sc.ttl_values)
    assert all(s.profile.fragmentation is Fragmentation.ALLOW for s in sessions)


def test_ipv6_scenario_compares_families():
    fams = [p.family for p in scenarios.get("ipv6").profiles()]
    assert fams == [AddressFamily.V4, AddressFamily.V6]


def test_unknown_scenario_lists_choices():
    with pytest.raises(KeyError) as exc:
        scenarios.get("nope")
    assert "baseline" in str(exc.value)


def test_quick_reference_commands():
    text = scenarios.quick_reference("10.1.1.1", 862)
    assert "twampy responder --port 862" in text
    assert "--tos 184" in text
    assert "--ipv6" in text
    assert "10.1.1.1:862" in text
    for name in scenarios.SCENARIOS:
        assert f"# -- {name}:" in text


def test_capped_limits_counts_and_gaps():
    sc = scenarios.capped(scenarios.get("eod"), 100, max_gap_s=0.5)
    assert [p.count for p in sc.profiles()] == [100, 100]
    assert [s.gap_before_s for s in sc.sessions()] == [0.0, 0.5]
    qos = scenarios.capped(scenarios.get("qos"), 50)
    assert [p.count for p in qos.profiles()] == [50, 50]
    sweep = scenarios.capped(scenarios.get("ttl_sweep"), 10)
    assert all(p.count == 10 for p in sweep.profiles())
    # the catalog itself is unchanged
    assert scenarios.get("eod").profiles()[0].count == 300000
