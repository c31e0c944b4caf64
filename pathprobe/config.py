import os
from dataclasses import dataclass, fields
from typing import Optional

from dotenv import load_dotenv

from pathprobe.errors import ConfigurationError
from pathprobe.results import Target

OUTPUT_FORMATS = ("text", "json", "csv")


@dataclass
class Settings:
    responder_ip: str = "10.0.0.2"
    responder_port: int = 862          # TWAMP-light
    ipv6_responder: Optional[str] = None
    local_iface: Optional[str] = None
    results_dir: str = "./twampy-results"
    cpu_pin: Optional[int] = None
    output_format: str = "text"

    path_mtu: int = 1500
    # per-probe timeout is max(interval, this)
    probe_timeout_s: float = 1.0
    # settle delay before the foreground stream of a concurrent scenario
    settle_s: float = 2.0

    # comparison / classification defaults handed to the analyzer
    significance_pct: float = 10.0
    burst_min_run: int = 3
    burst_share: float = 0.5

    def __post_init__(self):
        if self.output_format not in OUTPUT_FORMATS:
            raise ConfigurationError(
                f"output format must be one of {OUTPUT_FORMATS}, got {self.output_format!r}")
        if not 0 < self.responder_port < 65536:
            raise ConfigurationError(f"invalid responder port: {self.responder_port}")
        if self.probe_timeout_s <= 0:
            raise ConfigurationError("probe timeout must be positive")
        if self.settle_s < 0:
            raise ConfigurationError("settle delay must be >= 0")

    @property
    def target(self) -> Target:
        return Target(self.responder_ip, self.responder_port)

    @property
    def ipv6_target(self) -> Optional[Target]:
        if not self.ipv6_responder:
            return None
        return Target(self.ipv6_responder, self.responder_port)

    @classmethod
    def from_env(cls, env=None, dotenv: bool = True, **overrides) -> "Settings":
        """
        Build settings from RESPONDER_IP, RESPONDER_PORT, IPV6_RESPONDER,
        LOCAL_IFACE, RESULTS_DIR, CPU_PIN, LOG_FORMAT, PATH_MTU,
        PROBE_TIMEOUT_S and SETTLE_S. Keyword overrides that are not None win.
        """
        if dotenv:
            load_dotenv()
        env = os.environ if env is None else env
        names = {
            "responder_ip": ("RESPONDER_IP", str),
            "responder_port": ("RESPONDER_PORT", int),
            "ipv6_responder": ("IPV6_RESPONDER", str),
            "local_iface": ("LOCAL_IFACE", str),
            "results_dir": ("RESULTS_DIR", str),
            "cpu_pin": ("CPU_PIN", int),
            "output_format": ("LOG_FORMAT", str),
            "path_mtu": ("PATH_MTU", int),
            "probe_timeout_s": ("PROBE_TIMEOUT_S", float),
            "settle_s": ("SETTLE_S", float),
        }
        kwargs = {}
        for attr, (var, conv) in names.items():
            raw = env.get(var)
            if raw is None or raw == "":
                continue
            try:
                kwargs[attr] = conv(raw)
            except ValueError as e:
                raise ConfigurationError(f"{var}={raw!r}: {e}") from e
        known = {f.name for f in fields(cls)}
        for k, v in overrides.items():
            if k not in known:
                raise ConfigurationError(f"unknown setting: {k}")
            if v is not None:
                kwargs[k] = v
        return cls(**kwargs)
