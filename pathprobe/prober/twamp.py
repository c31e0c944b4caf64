# pathprobe/prober/twamp.py
import errno
import logging
import select
import socket
import struct
import time
from typing import Optional

from pathprobe.errors import ProbeTransportError, SessionUnreachable
from pathprobe.prober.base import ProbeChannel, Prober, Reply
from pathprobe.profile import AddressFamily, Fragmentation, Profile
from pathprobe.results import Target

log = logging.getLogger(__name__)

# 1-JAN-1900 to 1-JAN-1970, for NTP 64-bit timestamps [RFC1305]
TIMEOFFSET = 2208988800
ALLBITS = 0xFFFFFFFF

# unsynchronized clock, multiplier 1
ERROR_ESTIMATE = 0x0001

# sender test packet: seq, T1 (sec, frac), error estimate
TEST_FMT = "!L 2I H"
TEST_LEN = struct.calcsize(TEST_FMT)
# reflector reply, RFC 5357 unauthenticated mode:
# rseq, T3, err, mbz, T2, sender seq, T1, sender err, mbz, sender ttl, mbz
REPLY_FMT = "!L 2I H H 2I L 2I H H B 3x"
REPLY_LEN = struct.calcsize(REPLY_FMT)

# Linux values, not exported by the socket module everywhere
IP_MTU_DISCOVER = getattr(socket, "IP_MTU_DISCOVER", 10)
IP_PMTUDISC_DO = getattr(socket, "IP_PMTUDISC_DO", 2)
IPV6_DONTFRAG = getattr(socket, "IPV6_DONTFRAG", 62)
SO_BINDTODEVICE = getattr(socket, "SO_BINDTODEVICE", 25)

RECV_BUF = 65535


def ntp_now():
    t = time.time()
    sec = int(t)
    return sec + TIMEOFFSET, int((t - sec) * ALLBITS)


def ntp_to_ns(sec: int, frac: int) -> int:
    return (sec - TIMEOFFSET) * 1_000_000_000 + (frac * 1_000_000_000) // (ALLBITS + 1)


def pack_test(seq: int, padding: int) -> bytes:
    sec, frac = ntp_now()
    return struct.pack(TEST_FMT, seq & ALLBITS, sec, frac, ERROR_ESTIMATE) + bytes(padding)


def unpack_test(data: bytes):
    """-> (seq, t1_sec, t1_frac, err). Raises ValueError on short packets."""
    if len(data) < TEST_LEN:
        raise ValueError(f"short test packet: {len(data)} bytes")
    return struct.unpack(TEST_FMT, data[:TEST_LEN])


def pack_reply(rseq: int, request: bytes, t2, ttl: int = 255) -> bytes:
    sseq, t1s, t1f, serr = unpack_test(request)
    t3s, t3f = ntp_now()
    body = struct.pack(REPLY_FMT, rseq & ALLBITS, t3s, t3f, ERROR_ESTIMATE, 0,
                       t2[0], t2[1], sseq, t1s, t1f, serr, 0, ttl)
    # reflect at least as many bytes as the sender put on the wire
    if len(request) > len(body):
        body += bytes(len(request) - len(body))
    return body


def unpack_reply(data: bytes):
    """-> (sender_seq, reflector_residence_ns)."""
    if len(data) < REPLY_LEN:
        raise ValueError(f"short reply: {len(data)} bytes (expected >= {REPLY_LEN})")
    (_rseq, t3s, t3f, _err, _mbz, t2s, t2f, sseq,
     _t1s, _t1f, _serr, _mbz2, _ttl) = struct.unpack(REPLY_FMT, data[:REPLY_LEN])
    residence = ntp_to_ns(t3s, t3f) - ntp_to_ns(t2s, t2f)
    return sseq, max(0, residence)


def resolve(target: Target, family: AddressFamily):
    af = socket.AF_INET6 if family is AddressFamily.V6 else socket.AF_INET
    try:
        infos = socket.getaddrinfo(target.host, target.port, af, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    except socket.gaierror as e:
        raise SessionUnreachable(target, f"cannot resolve for IPv{family.value}: {e}") from e
    if not infos:
        raise SessionUnreachable(target, "no address")
    return infos[0][0], infos[0][4]


class TwampChannel(ProbeChannel):
    def __init__(self, sock: socket.socket, target: Target, profile: Profile):
        self.sock = sock
        self.target = target
        self.profile = profile
        self._pad = profile.payload_size
        self._last = 0

    def send(self, seq: int) -> int:
        data = pack_test(seq, self._pad)
        send_ns = time.monotonic_ns()
        try:
            self.sock.send(data)
        except OSError as e:
            raise ProbeTransportError(f"send seq={seq} failed: {e}") from e
        self._last = seq
        return send_ns

    def receive(self, timeout_s: float) -> list:
        ready, _, _ = select.select([self.sock], [], [], max(0.0, timeout_s))
        if not ready:
            return []
        replies = []
        while True:
            try:
                data = self.sock.recv(RECV_BUF)
            except BlockingIOError:
                break
            except ConnectionRefusedError:
                # ICMP port unreachable from the far end: nothing to record
                log.debug("port unreachable reported by %s", self.target)
                continue
            except OSError as e:
                # time exceeded / host unreachable errors for low-TTL probes
                log.debug("receive error from %s: %s", self.target, e)
                break
            recv_ns = time.monotonic_ns()
            try:
                sseq, residence = unpack_reply(data)
            except (ValueError, struct.error) as e:
                log.warning("ignoring malformed reply from %s: %s", self.target, e)
                continue
            # widen the 32-bit wire sequence back to the session sequence
            seq = self._last - ((self._last - sseq) % (ALLBITS + 1))
            replies.append(Reply(seq, recv_ns, residence))
        return replies

    def close(self):
        try:
            self.sock.close()
        except OSError as e:
            log.warning("error closing socket to %s: %s", self.target, e)


class TwampLightProber(Prober):
    """
    TWAMP-light session sender over UDP. The responder side can be the
    bundled reflector or any TWAMP-light implementation (e.g. twampy).
    """

    def __init__(self, interface: Optional[str] = None):
        self.interface = interface

    def _mark(self, sock: socket.socket, af: int, profile: Profile):
        tos = profile.traffic_class.tos
        if af == socket.AF_INET:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_TTL, profile.ttl)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_TOS, tos)
        else:
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_UNICAST_HOPS, profile.ttl)
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_TCLASS, tos)

        if profile.fragmentation is Fragmentation.FORBID:
            try:
                if af == socket.AF_INET:
                    sock.setsockopt(socket.IPPROTO_IP, IP_MTU_DISCOVER, IP_PMTUDISC_DO)
                else:
                    sock.setsockopt(socket.IPPROTO_IPV6, IPV6_DONTFRAG, 1)
            except OSError as e:
                log.warning("could not set don't-fragment: %s", e)

        if self.interface:
            try:
                sock.setsockopt(socket.SOL_SOCKET, SO_BINDTODEVICE, self.interface.encode() + b"\0")
            except OSError as e:
                log.warning("could not bind to interface %s: %s", self.interface, e)

    def open(self, target: Target, profile: Profile) -> TwampChannel:
        af, sa = resolve(target, profile.family)
        try:
            sock = socket.socket(af, socket.SOCK_DGRAM)
        except OSError as e:
            raise SessionUnreachable(target, f"cannot create IPv{profile.family.value} socket: {e}") from e
        try:
            self._mark(sock, af, profile)
            sock.connect(sa)
        except OSError as e:
            sock.close()
            if e.errno in (errno.ENETUNREACH, errno.EHOSTUNREACH, errno.EADDRNOTAVAIL, errno.EAFNOSUPPORT):
                raise SessionUnreachable(target, str(e)) from e
            # e.g. EINVAL for a link-local address without scope, EPERM from a socket option
            raise SessionUnreachable(target, f"socket setup failed: {e}") from e
        sock.setblocking(False)
        log.debug("opened TWAMP-light session to %s (%s)", target, profile.describe())
        return TwampChannel(sock, target, profile)
