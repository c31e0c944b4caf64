# pathprobe/prober/base.py
from abc import ABC, abstractmethod
from typing import NamedTuple, Optional

from pathprobe.profile import Profile
from pathprobe.results import Target


class Reply(NamedTuple):
    seq: int
    recv_ns: int                       # time.monotonic_ns() at receipt
    reflector_ns: Optional[int] = None  # time spent inside the responder, if reported


class ProbeChannel(ABC):
    """
    One open measurement session towards a target. Timestamps come from
    time.monotonic_ns() so the runner can compare them with its own schedule.
    """

    @abstractmethod
    def send(self, seq: int) -> int:
        """Transmit probe `seq` and return its send timestamp.
        Raises ProbeTransportError if the probe never left the host."""
        raise NotImplementedError

    @abstractmethod
    def receive(self, timeout_s: float) -> list:
        """Block up to timeout_s for replies; return whatever arrived (maybe [])."""
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class Prober(ABC):
    @abstractmethod
    def open(self, target: Target, profile: Profile) -> ProbeChannel:
        """Prepare a channel marked per profile. Raises SessionUnreachable."""
        raise NotImplementedError
