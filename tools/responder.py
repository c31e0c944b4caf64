# tools/responder.py
# Usage: python3 -m tools.responder [--host 0.0.0.0] [--port 862] [--idle-reset 60]
# Run on the far end of the path under test.
import argparse
import time

from pathprobe.log import setup_logger
from pathprobe.prober.reflector import TwampReflector


def build_argparser():
    ap = argparse.ArgumentParser(description="TWAMP-light reflector")
    ap.add_argument("--host", default="0.0.0.0", help="Bind address (use :: for IPv6)")
    ap.add_argument("--port", type=int, default=862)
    ap.add_argument("--idle-reset", type=float, default=0,
                    help="Reset a sender's reflector sequence after this many idle seconds")
    ap.add_argument("--log-file")
    return ap


def main():
    args = build_argparser().parse_args()
    log = setup_logger("pathprobe", log_file=args.log_file)
    refl = TwampReflector(args.host, args.port, idle_reset_s=args.idle_reset)
    refl.start()
    try:
        while refl.is_alive():
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        refl.stop()
        refl.join(timeout=2.0)
        log.info("reflected %d packets", refl.reflected)


if __name__ == "__main__":
    main()
