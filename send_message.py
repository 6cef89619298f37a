"""
Send a single APRS message through APRS-IS and exit.

Usage:
  python send_message.py CALLSIGN "message text" [config]
"""
import sys
import socket
import logging

from aprschat import aprs
from aprschat.app import DEFAULT_CONFIG_FILE, load_config

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("send-message")


def wait_for_logresp(sock, timeout=5):
    sock.settimeout(timeout)
    buf = b""
    try:
        while True:
            data = sock.recv(1024)
            if not data:
                return None
            buf += data
            *lines, buf = buf.split(b"\n")
            for raw in lines:
                logresp = aprs.parse_login_response(raw.decode("utf-8", errors="replace"))
                if logresp is not None:
                    return logresp
    except socket.timeout:
        return None


def send_aprs_message(message_text, to_call, cfg):
    login_call = cfg.get("aprs", "callsign").strip().upper()
    passcode = cfg.get("aprs", "passcode").strip()
    server = cfg.get("aprs_is", "addr")
    port = cfg.getint("aprs_is", "port")

    packet = aprs.build_message_packet(login_call, to_call, message_text, aprs.generate_message_id())

    with socket.create_connection((server, port), timeout=15) as sock:
        logger.info(f"Connected to APRS-IS server: {server}:{port}")
        sock.sendall(aprs.build_login_line(login_call, passcode).encode("utf-8"))

        logresp = wait_for_logresp(sock)
        if logresp is None:
            logger.warning("No login response from server")
        elif not logresp.verified:
            logger.error(f"Login not verified — check your callsign and passcode! ({logresp.raw})")
            return None

        sock.sendall(packet.encode("utf-8"))
        logger.info(f"Sent: {packet.strip()}")
    return packet


def main(argv):
    if len(argv) < 3:
        print(__doc__.strip())
        return 2

    target = argv[1].strip().upper()
    config_file = argv[3] if len(argv) > 3 else DEFAULT_CONFIG_FILE
    cfg = load_config(config_file)
    if not cfg.get("aprs", "callsign").strip() or not cfg.get("aprs", "passcode").strip():
        logger.error(f"callsign and passcode must be set in [aprs] of {config_file}")
        return 1

    try:
        packet = send_aprs_message(argv[2], target, cfg)
    except aprs.PacketError as e:
        logger.error(f"Cannot encode message: {e}")
        return 1
    except OSError as e:
        logger.error(f"Connection failed: {e}")
        return 1
    return 0 if packet else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv))
