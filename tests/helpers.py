from aprschat.clients import NotConnectedError


class FakeSocket:
    def __init__(self, chunks=()):
        self.chunks = list(chunks)
        self.sent = []
        self.closed = False
        self.connected_to = None

    def connect(self, addr):
        self.connected_to = addr

    def settimeout(self, timeout):
        pass

    def sendall(self, data):
        self.sent.append(data)

    def recv(self, size):
        if self.chunks:
            return self.chunks.pop(0)
        return b""

    def fileno(self):
        return -1 if self.closed else 3

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeClient:
    """Stands in for AprsIsClient; records packets instead of sending them."""

    def __init__(self, connected=False):
        self.connected = connected
        self.sent = []
        self.connects = 0
        self.callsign = None
        self.passcode = None
        self.filter = ""
        self.on_recv_line = None
        self.on_disconnect = None

    def connect(self):
        self.connects += 1
        self.connected = True

    def disconnect(self):
        self.connected = False

    def is_connected(self):
        return self.connected

    def loop(self):
        pass

    def send_packet(self, packet):
        if not self.connected:
            raise NotConnectedError("socket not open")
        self.sent.append(packet)
