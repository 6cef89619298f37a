import socket
import logging

from . import aprs

logger = logging.getLogger(__name__)


class NotConnectedError(RuntimeError):
    """Raised when a packet is sent while the socket is closed."""


class BaseClient:
    def __init__(self, addr, port):
        self.addr = addr
        self.port = port
        self.sock = None
        self._connected = False
        self.on_recv_line = None
        self.on_connect = None
        self.on_disconnect = None

    def connect(self):
        try:
            self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.sock.connect((self.addr, self.port))
            self.sock.settimeout(None)
            self._connected = True
            logger.info(f"Connected to {self.addr}:{self.port}")
        except OSError as e:
            logger.error(f"Connection to {self.addr}:{self.port} failed: {e}")
            self._connected = False
            return

        if self.on_connect:
            self.on_connect()

    def disconnect(self):
        was_connected = self._connected
        self._connected = False
        if self.sock is not None:
            try:
                self.sock.close()
            except OSError as e:
                logger.debug(f"Error closing socket: {e}")
            self.sock = None
        if was_connected:
            logger.info(f"Disconnected from {self.addr}:{self.port}")
            if self.on_disconnect:
                self.on_disconnect()

    def is_connected(self):
        return self.sock is not None and self._connected and self.sock.fileno() >= 0

    def loop(self):
        raise NotImplementedError

    def send_packet(self, packet):
        raise NotImplementedError


class AprsIsClient(BaseClient):
    """
    Line oriented APRS-IS client. Complete lines are handed to
    on_recv_line in arrival order; a partial line stays buffered until
    its newline arrives.
    """

    def __init__(self, addr, port, callsign, passcode, aprs_filter=""):
        super().__init__(addr, port)
        self.callsign = callsign
        self.passcode = passcode
        self.filter = aprs_filter
        self.buf = b""

    def connect(self):
        self.buf = b""
        super().connect()
        if not self._connected:
            return

        login = aprs.build_login_line(self.callsign, self.passcode, aprs_filter=self.filter)
        try:
            self.send_packet(login)
            logger.info(f"APRS-IS login sent: [{login.strip()}]")
        except NotConnectedError:
            logger.error("APRS-IS login could not be sent")

    def loop(self):
        if not self.is_connected():
            return
        try:
            data = self.sock.recv(1024)
        except socket.timeout:
            logger.warning("APRS-IS read timed out.")
            self.disconnect()
            return
        except OSError as e:
            logger.error(f"APRS-IS socket error: {e}")
            self.disconnect()
            return

        if not data:
            logger.warning("APRS-IS socket returned empty — connection may have closed.")
            self.disconnect()
            return

        self.feed(data)

    def feed(self, data):
        """Append received bytes and dispatch every complete line."""
        self.buf += data
        *lines, self.buf = self.buf.split(b"\n")
        for raw in lines:
            line = raw.decode("utf-8", errors="replace").rstrip("\r")
            if not line.strip():
                continue
            logger.debug(f"📨 Raw line from APRS-IS: {line!r}")
            if self.on_recv_line:
                self.on_recv_line(line)

    def send_packet(self, packet):
        if not self.is_connected():
            raise NotConnectedError(f"Not connected to APRS-IS ({self.addr}:{self.port})")
        raw = packet.encode("utf-8") if isinstance(packet, str) else packet
        try:
            self.sock.sendall(raw)
        except OSError as e:
            logger.error(f"Send to APRS-IS failed: {e}")
            self.disconnect()
            raise NotConnectedError(str(e)) from e
        logger.info(f"Sent to APRS-IS: {raw.decode('utf-8', errors='replace').strip()}")
