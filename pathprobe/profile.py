# pathprobe/profile.py
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from pathprobe.errors import InvalidProfile

# IPv4/IPv6 header + UDP header
IP_OVERHEAD = {4: 20, 6: 40}
UDP_OVERHEAD = 8
# TWAMP-light test packet header: seq(4) + timestamp(8) + error estimate(2)
PROBE_HEADER = 14

DEFAULT_MTU = 1500


class TrafficClass(Enum):
    """DSCP classes used by the catalog. Value is the DSCP code point."""
    CS0 = 0      # best effort: historical, bulk reference
    AF31 = 26    # secondary/backup feeds
    AF41 = 34    # primary market data
    EF = 46      # order entry, risk checks
    CS6 = 48     # heartbeats, session mgmt

    @property
    def tos(self) -> int:
        # DSCP sits in the upper six bits of the TOS / traffic class byte
        return self.value << 2

    @classmethod
    def parse(cls, value) -> "TrafficClass":
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            for tc in cls:
                if tc.value == value or tc.tos == value:
                    return tc
        else:
            try:
                return cls[str(value).upper()]
            except KeyError:
                pass
        raise InvalidProfile(f"unknown traffic class: {value!r}")


class Fragmentation(Enum):
    FORBID = "forbid"
    ALLOW = "allow"


class AddressFamily(Enum):
    V4 = 4
    V6 = 6


@dataclass(frozen=True)
class Profile:
    count: int
    interval_s: float
    payload_size: int = 0
    traffic_class: TrafficClass = TrafficClass.CS0
    ttl: int = 64
    fragmentation: Fragmentation = Fragmentation.FORBID
    family: AddressFamily = AddressFamily.V4
    # set only when the profile deliberately targets a larger MTU (jumbo frames)
    mtu: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.count, int) or self.count <= 0:
            raise InvalidProfile(f"count must be a positive integer, got {self.count!r}")
        if self.interval_s < 0:
            raise InvalidProfile(f"interval must be >= 0, got {self.interval_s!r}")
        if self.payload_size < 0:
            raise InvalidProfile(f"payload size must be >= 0, got {self.payload_size!r}")
        if not 1 <= self.ttl <= 255:
            raise InvalidProfile(f"ttl must be within 1..255, got {self.ttl!r}")
        if self.mtu is not None and self.mtu < 68:
            raise InvalidProfile(f"mtu too small: {self.mtu!r}")

    @property
    def interval_ns(self) -> int:
        return round(self.interval_s * 1_000_000_000)

    @property
    def duration_s(self) -> float:
        return self.count * self.interval_s

    @property
    def rate_pps(self) -> Optional[float]:
        return 1.0 / self.interval_s if self.interval_s > 0 else None

    @property
    def datagram_size(self) -> int:
        """UDP payload actually put on the wire."""
        return PROBE_HEADER + self.payload_size

    @property
    def packet_size(self) -> int:
        """IP packet size including headers."""
        return IP_OVERHEAD[self.family.value] + UDP_OVERHEAD + self.datagram_size

    def check_path_mtu(self, path_mtu: int = DEFAULT_MTU) -> None:
        """Raise InvalidProfile when the packet cannot cross the path unfragmented."""
        if self.fragmentation is Fragmentation.ALLOW:
            return
        mtu = self.mtu or path_mtu
        if self.packet_size > mtu:
            raise InvalidProfile(
                f"{self.packet_size}B packet exceeds MTU {mtu} with fragmentation forbidden "
                f"(payload {self.payload_size}B)"
            )

    def with_ttl(self, ttl: int) -> "Profile":
        return replace(self, ttl=ttl)

    def describe(self) -> str:
        rate = f"{self.rate_pps:g} pps" if self.rate_pps else "back-to-back"
        return (f"{self.count} x {self.packet_size}B @ {rate}, "
                f"{self.traffic_class.name}, ttl={self.ttl}, "
                f"{'DF' if self.fragmentation is Fragmentation.FORBID else 'frag ok'}, "
                f"IPv{self.family.value}")
