import logging
import threading
from collections import OrderedDict, deque

from . import aprs
from . import store
from .gps import PositionUnavailable
from .symbols import DEFAULT_SYMBOL, parse_symbol

logger = logging.getLogger(__name__)

DEDUP_CACHE_SIZE = 400
PENDING_ACKS_SIZE = 400


class ChatSession:
    """
    Application state of one logged in station.

    Inbound lines arrive through handle_line (wired to the client's
    on_recv_line); user intents come in through send_message, send_beacon,
    add_contact and friends. The session owns the message history and the
    set of outgoing message IDs still waiting for an ack.
    """

    def __init__(self, client, kv_store, history, position_source=None,
                 comment="Web Beacon", long_message="send", messaging=False, tz=None):
        self.client = client
        self.kv_store = kv_store
        self.history = history
        self.position_source = position_source
        self.comment = comment
        self.long_message = long_message
        self.messaging = messaging
        self.tz = tz

        self.callsign = ""
        self.passcode = ""
        self.symbol = kv_store.get(store.SYMBOL_KEY) or DEFAULT_SYMBOL
        self.current_contact = store.SYSTEM_CHANNEL
        self.verified = None
        self.last_beacon = None
        self.pending_acks = OrderedDict()

        self.on_login = None
        self.on_message = None
        self.on_ack = None

        self._seen = deque(maxlen=DEDUP_CACHE_SIZE)
        self._lock = threading.RLock()

        if client is not None:
            client.on_recv_line = self.handle_line

    def login(self, callsign, passcode):
        callsign = (callsign or "").strip().upper()
        passcode = (passcode or "").strip()
        if not callsign or not passcode:
            raise ValueError("Callsign and passcode are required")

        with self._lock:
            self.callsign = callsign
            self.passcode = passcode
            self.verified = None
            store.save_credentials(self.kv_store, callsign, passcode)

        self.client.callsign = callsign
        self.client.passcode = passcode
        if self.client.is_connected():
            self.client.disconnect()
        self.client.connect()

    def logout(self):
        self.client.disconnect()
        with self._lock:
            self.verified = None

    def is_connected(self):
        return self.client is not None and self.client.is_connected()

    def handle_line(self, line):
        logger.debug(f"RECV: {line}")

        logresp = aprs.parse_login_response(line, self.tz)
        if logresp is not None:
            self._handle_login_response(logresp)
            return logresp

        packet = aprs.parse_packet(line, self.tz)
        if packet is None:
            return None
        if packet.type == "message":
            self._handle_message(packet)
        elif packet.type == "ack":
            self._handle_ack(packet)
        else:
            logger.debug(f"Ignoring packet: {packet.raw}")
        return packet

    def _handle_login_response(self, logresp):
        with self._lock:
            self.verified = logresp.verified
        if logresp.verified:
            logger.info(f"Login verified for {logresp.callsign} (server {logresp.server})")
        else:
            logger.error(f"Login failed: {logresp.raw}")
            self.client.disconnect()
        if self.on_login:
            self.on_login(logresp)

    def _handle_message(self, packet):
        if packet.target.upper() != self.callsign:
            logger.debug(f"Ignoring message to {packet.target} — not addressed to {self.callsign}")
            return

        duplicate = False
        if packet.msg_id:
            key = (packet.source.upper(), packet.msg_id)
            with self._lock:
                duplicate = key in self._seen
                if not duplicate:
                    self._seen.append(key)

        if duplicate:
            logger.info(f"[DEDUP] Duplicate message {packet.msg_id} from {packet.source}, skipping.")
        else:
            logger.info(f"Message from {packet.source}: {packet.content}")
            with self._lock:
                self.history.add(packet.source, packet.source, packet.content, "received", packet.timestamp)
            if self.on_message:
                self.on_message(packet)

        if packet.msg_id:
            logger.info(f"Sending ack to message {packet.msg_id} from {packet.source}")
            try:
                self.client.send_packet(aprs.build_ack_packet(self.callsign, packet.source, packet.msg_id))
            except (aprs.PacketError, RuntimeError) as e:
                logger.error(f"Could not ack {packet.msg_id} from {packet.source}: {e}")

    def _handle_ack(self, packet):
        if packet.target.upper() != self.callsign:
            return
        with self._lock:
            contact = self.pending_acks.pop((packet.source.upper(), packet.msg_id), None)
        if contact is None:
            logger.debug(f"Ack {packet.msg_id} from {packet.source} matches no pending message")
            return
        logger.info(f"Message {packet.msg_id} to {contact} acknowledged")
        if self.on_ack:
            self.on_ack(packet)

    def send_message(self, content, contact=None):
        if content is not None and not isinstance(content, str):
            raise ValueError("Message content must be text")
        content = (content or "").strip()
        if not content:
            raise ValueError("Message is empty")
        contact = (contact or self.current_contact).strip().upper()

        body = aprs.apply_length_policy(content, self.long_message)
        msg_id = aprs.generate_message_id()
        packet = aprs.build_message_packet(self.callsign, contact, body, msg_id)
        self.client.send_packet(packet)

        with self._lock:
            self.pending_acks[(contact, msg_id)] = contact
            while len(self.pending_acks) > PENDING_ACKS_SIZE:
                self.pending_acks.popitem(last=False)
            self.history.add(contact, self.callsign, body, "sent", aprs.receipt_time(self.tz))
        return packet

    def send_beacon(self, latitude=None, longitude=None):
        if latitude is None or longitude is None:
            if self.position_source is None:
                raise PositionUnavailable("No position source configured")
            latitude, longitude = self.position_source.get_position()

        packet = aprs.build_position_packet(
            self.callsign, latitude, longitude, self.symbol, self.comment, self.messaging
        )
        self.client.send_packet(packet)
        logger.info(f"BEACON SENT: {packet.strip()}")
        with self._lock:
            self.last_beacon = aprs.receipt_time(self.tz)
        return packet

    def add_contact(self, callsign):
        contact = (callsign or "").strip().upper()
        if not contact:
            raise ValueError("Callsign is required")
        if contact == self.callsign:
            raise ValueError("You can't message yourself!")
        with self._lock:
            self.history.ensure_contact(contact)
            self.current_contact = contact
        return contact

    def select_contact(self, contact):
        with self._lock:
            self.current_contact = contact.strip().upper()

    def delete_chat(self, contact):
        contact = contact.strip().upper()
        with self._lock:
            deleted = self.history.delete(contact)
            if self.current_contact == contact:
                self.current_contact = store.SYSTEM_CHANNEL
        return deleted

    def update_settings(self, passcode=None, symbol=None):
        if symbol is not None:
            symbol = parse_symbol(symbol).code
        with self._lock:
            if passcode:
                self.passcode = passcode.strip()
                self.kv_store.set(store.PASSCODE_KEY, self.passcode)
                self.client.passcode = self.passcode
            if symbol is not None:
                self.symbol = symbol
                self.kv_store.set(store.SYMBOL_KEY, symbol)

    def status(self):
        return {
            "callsign": self.callsign,
            "connected": self.is_connected(),
            "verified": self.verified,
            "current_contact": self.current_contact,
            "symbol": self.symbol,
            "last_beacon": self.last_beacon,
            "pending_acks": len(self.pending_acks),
        }
