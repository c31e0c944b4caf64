# tests/test_profile.py
import pytest

from pathprobe.errors import ConfigurationError, InvalidProfile
from pathprobe.profile import AddressFamily, Fragmentation, Profile, TrafficClass


def test_profile_sizes_and_rate():
    """Packet size adds IP/UDP overhead to the probe header plus padding."""
    p = Profile(count=100, interval_s=0.001, payload_size=100, traffic_class=TrafficClass.EF)
    assert p.datagram_size == 114
    assert p.packet_size == 20 + 8 + 114
    assert p.rate_pps == pytest.approx(1000.0)
    assert p.duration_s == pytest.approx(0.1)
    assert p.interval_ns == 1_000_000
    v6 = Profile(count=1, interval_s=0.01, family=AddressFamily.V6)
    assert v6.packet_size == 40 + 8 + 14


@pytest.mark.parametrize("kwargs", [
    {"count": 0, "interval_s": 0.01},
    {"count": -5, "interval_s": 0.01},
    {"count": 10, "interval_s": -0.1},
    {"count": 10, "interval_s": 0.01, "payload_size": -1},
    {"count": 10, "interval_s": 0.01, "ttl": 0},
    {"count": 10, "interval_s": 0.01, "ttl": 256},
])
def test_profile_rejects_invalid_parameters(kwargs):
    with pytest.raises(InvalidProfile):
        Profile(**kwargs)


def test_invalid_profile_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        Profile(count=0, interval_s=0.01)


def test_zero_interval_is_back_to_back():
    p = Profile(count=10, interval_s=0)
    assert p.rate_pps is None
    assert "back-to-back" in p.describe()


def test_path_mtu_check_with_fragmentation_forbidden():
    """A 1500-byte path cannot carry a 1600-byte packet with DF set."""
    big = Profile(count=10, interval_s=0.01, payload_size=1600 - 42)
    assert big.packet_size == 1600
    with pytest.raises(InvalidProfile):
        big.check_path_mtu(1500)
    # fragmentation allowed: the check passes
    Profile(count=10, interval_s=0.01, payload_size=1600 - 42,
            fragmentation=Fragmentation.ALLOW).check_path_mtu(1500)
    # exactly at the MTU is fine
    Profile(count=10, interval_s=0.01, payload_size=1500 - 42).check_path_mtu(1500)


def test_jumbo_profile_uses_its_own_mtu():
    jumbo = Profile(count=10, interval_s=0.001, payload_size=8900, mtu=9000)
    jumbo.check_path_mtu(1500)
    with pytest.raises(InvalidProfile):
        Profile(count=10, interval_s=0.001, payload_size=9000, mtu=9000).check_path_mtu(1500)


def test_traffic_class_tos_and_parse():
    assert TrafficClass.EF.tos == 184
    assert TrafficClass.AF41.tos == 136
    assert TrafficClass.CS6.tos == 192
    assert TrafficClass.parse("ef") is TrafficClass.EF
    assert TrafficClass.parse(34) is TrafficClass.AF41
    assert TrafficClass.parse(184) is TrafficClass.EF
    with pytest.raises(InvalidProfile):
        TrafficClass.parse("AF99")


def test_with_ttl_leaves_original_untouched():
    p = Profile(count=10, interval_s=0.01)
    q = p.with_ttl(3)
    assert q.ttl == 3 and p.ttl == 64
    assert q.count == p.count
