# pathprobe/prober/reflector.py
import logging
import select
import socket
import struct
import threading
import time

from pathprobe.prober.twamp import RECV_BUF, ntp_now, pack_reply

log = logging.getLogger(__name__)


class TwampReflector(threading.Thread):
    """
    TWAMP-light session reflector. Answers every test packet with an RFC 5357
    unauthenticated reply; keeps one reflector sequence per source address,
    reset after `idle_reset_s` of silence from that source (0 disables).
    The socket is bound in the constructor so `port` is usable before start().
    """

    def __init__(self, host: str = "0.0.0.0", port: int = 862, idle_reset_s: float = 0):
        super().__init__(name="twamp-reflector", daemon=True)
        af = socket.AF_INET6 if ":" in host else socket.AF_INET
        self.sock = socket.socket(af, socket.SOCK_DGRAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind((host, port))
        self.host = host
        self.port = self.sock.getsockname()[1]
        self.idle_reset_s = idle_reset_s
        self.reflected = 0
        self._stop_event = threading.Event()

    def stop(self):
        self._stop_event.set()

    def run(self):
        log.info("TWAMP reflector listening on %s:%s", self.host, self.port)
        index = {}      # source -> next reflector seq
        last_seen = {}  # source -> monotonic seconds
        try:
            while not self._stop_event.is_set():
                ready, _, _ = select.select([self.sock], [], [], 0.2)
                if not ready:
                    continue
                try:
                    data, addr = self.sock.recvfrom(RECV_BUF)
                except OSError as e:
                    log.warning("reflector receive error: %s", e)
                    continue
                t2 = ntp_now()
                now = time.monotonic()
                if self.idle_reset_s and now - last_seen.get(addr, now) > self.idle_reset_s:
                    log.info("resetting reflector sequence for %s after idle", addr)
                    index[addr] = 0
                last_seen[addr] = now
                rseq = index.get(addr, 0)
                try:
                    reply = pack_reply(rseq, data, t2)
                except (ValueError, struct.error) as e:
                    log.warning("dropping malformed test packet from %s: %s", addr, e)
                    continue
                try:
                    self.sock.sendto(reply, addr)
                except OSError as e:
                    log.warning("reflector send to %s failed: %s", addr, e)
                    continue
                index[addr] = rseq + 1
                self.reflected += 1
        finally:
            self.sock.close()
            log.info("TWAMP reflector on port %s stopped after %d replies", self.port, self.reflected)
