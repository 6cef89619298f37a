#
# aprschat - An APRS-IS chat client
# Packet generation and parsing for the APRS-IS network
#

import logging
import random
import string
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

logger = logging.getLogger(__name__)

SOFTWARE_NAME = "9M2PJU-Web-APRS-Messenger"
VERSION = "1.0.0"

TOCALL = "APJUMB"
PATH = "TCPIP*"

ADDRESSEE_WIDTH = 9
MAX_MESSAGE_LENGTH = 67
MAX_ACK_LENGTH = 8
MAX_MSGID_LENGTH = 5

LENGTH_POLICIES = ("send", "truncate", "reject")

_MSGID_CHARS = frozenset(string.ascii_uppercase + string.digits)
_BASE36 = string.digits + string.ascii_lowercase


class PacketError(ValueError):
    """Raised when an outbound packet cannot be encoded."""


def _header(source):
    return f"{source.upper()}>{TOCALL},{PATH}"


def _pad_addressee(destination):
    addressee = destination.upper()
    if len(addressee) > ADDRESSEE_WIDTH:
        raise PacketError(
            f"Addressee '{addressee}' is longer than {ADDRESSEE_WIDTH} characters"
        )
    return addressee.ljust(ADDRESSEE_WIDTH, " ")


def build_login_line(callsign, passcode, software_name=SOFTWARE_NAME, version=VERSION, aprs_filter=None):
    """
    Login line for APRS-IS.
    Format: user CALLSIGN-SSID pass PASSCODE vers SoftwareName Version
    """
    login = f"user {callsign.upper()} pass {passcode} vers {software_name} {version}"
    if aprs_filter:
        login += f" filter {aprs_filter}"
    return login + "\r\n"


def generate_message_id():
    """Random 5-character alphanumeric ID for APRS messages."""
    return "".join(random.choice(_BASE36) for _ in range(MAX_MSGID_LENGTH)).upper()


def apply_length_policy(body, policy="send"):
    """
    Enforce the conventional 67 character message payload limit.

    'send' leaves the body untouched, 'truncate' cuts it down and
    'reject' raises PacketError for oversized bodies.
    """
    if policy not in LENGTH_POLICIES:
        raise ValueError(f"Unknown message length policy: {policy!r}")
    if len(body) <= MAX_MESSAGE_LENGTH or policy == "send":
        return body
    if policy == "truncate":
        logger.info(f"Truncating {len(body)} character message to {MAX_MESSAGE_LENGTH}")
        return body[:MAX_MESSAGE_LENGTH]
    raise PacketError(
        f"Message is {len(body)} characters, limit is {MAX_MESSAGE_LENGTH}"
    )


def build_message_packet(source, destination, body, msg_id=None):
    """
    APRS message packet.
    Format: SOURCE>DEST,PATH::DESTINATION:MESSAGE{ID
    DESTINATION is padded with spaces to 9 characters.
    """
    id_part = f"{{{msg_id}" if msg_id else ""
    return f"{_header(source)}::{_pad_addressee(destination)}:{body}{id_part}\r\n"


def build_ack_packet(source, destination, ack_id):
    """Format: SOURCE>DEST,PATH::DESTINATION:ackID"""
    return f"{_header(source)}::{_pad_addressee(destination)}:ack{ack_id}\r\n"


def _format_coordinate(value, degree_width, positive, negative):
    direction = positive if value >= 0 else negative
    abs_val = abs(value)
    deg = int(abs_val)
    # Exact binary value rounded half-up, the same result as fixed-point
    # formatting to two decimals.
    minutes = Decimal((abs_val - deg) * 60).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    # Minutes must stay below 60: 3.9999999 is 0400.00N, never 0360.00N.
    if minutes >= 60:
        deg += 1
        minutes = Decimal("0.00")
    return f"{deg:0{degree_width}d}{minutes:05.2f}{direction}"


def encode_position(lat, lon):
    """
    Encode decimal degrees into APRS DDMM.hh format.

    Latitude: DDMM.hhN (2+2.2 chars + Dir)
    Longitude: DDDMM.hhW (3+2.2 chars + Dir)
    """
    return (
        _format_coordinate(lat, 2, "N", "S"),
        _format_coordinate(lon, 3, "E", "W"),
    )


def build_position_packet(source, latitude, longitude, symbol="/>", comment="", messaging=False):
    """
    APRS position packet (beacon).
    Format: SOURCE>APJUMB,TCPIP*:!LAT(Table)LON(Symbol)COMMENT

    With messaging=True the '=' data type is used, marking the station
    as message capable.
    """
    lat, lon = encode_position(latitude, longitude)
    table, glyph = symbol[0], symbol[1]
    data_type = "=" if messaging else "!"
    return f"{_header(source)}:{data_type}{lat}{table}{lon}{glyph}{comment}\r\n"


def receipt_time(tz=None):
    """Local wall clock time, formatted for display."""
    now = datetime.now(tz) if tz is not None else datetime.now()
    return now.strftime("%H:%M:%S")


class ParsedPacket:
    type = None

    def __init__(self, timestamp):
        self.timestamp = timestamp

    def as_dict(self):
        d = {"type": self.type}
        d.update(self.__dict__)
        return d

    def __repr__(self):
        fields = ", ".join(f"{k}={v!r}" for k, v in self.__dict__.items())
        return f"{self.__class__.__name__}({fields})"


class MessagePacket(ParsedPacket):
    type = "message"

    def __init__(self, source, target, content, msg_id=None, timestamp=None):
        super().__init__(timestamp)
        self.source = source
        self.target = target
        self.content = content
        self.msg_id = msg_id


class AckPacket(ParsedPacket):
    type = "ack"

    def __init__(self, source, target, msg_id, timestamp=None):
        super().__init__(timestamp)
        self.source = source
        self.target = target
        self.msg_id = msg_id


class LoginResponse(ParsedPacket):
    type = "login-response"

    def __init__(self, callsign, verified, server=None, raw="", timestamp=None):
        super().__init__(timestamp)
        self.callsign = callsign
        self.verified = verified
        self.server = server
        self.raw = raw


class OtherPacket(ParsedPacket):
    type = "other"

    def __init__(self, raw, timestamp=None):
        super().__init__(timestamp)
        self.raw = raw


def _split_message(line):
    """
    Split SOURCE>PATH::TARGET:BODY into its parts.
    Returns None when the line does not have the message shape.
    """
    source, sep, rest = line.partition(">")
    if not sep or not source:
        return None

    path_end = rest.find(":")
    if path_end <= 0 or rest[path_end:path_end + 2] != "::":
        return None

    addressed = rest[path_end + 2:]
    target_end = addressed.find(":")
    if target_end <= 0:
        return None

    return source, addressed[:target_end], addressed[target_end + 1:]


def _split_msgid(content):
    brace = content.rfind("{")
    if brace < 0:
        return content, None
    candidate = content[brace + 1:]
    if 1 <= len(candidate) <= MAX_MSGID_LENGTH and all(c in _MSGID_CHARS for c in candidate):
        return content[:brace], candidate
    return content, None


def parse_packet(line, tz=None):
    """
    Parse an incoming APRS-IS line.

    Returns None for blank lines and server comments, a MessagePacket or
    AckPacket for '::' addressed packets and an OtherPacket for anything
    else. Never raises on malformed input.
    """
    if not line:
        return None
    line = line.rstrip("\r\n")
    if not line.strip() or line.startswith("#"):
        return None

    timestamp = receipt_time(tz)

    parts = _split_message(line)
    if parts is None:
        logger.debug(f"Not a message packet: {line!r}")
        return OtherPacket(line, timestamp=timestamp)

    source, target, body = parts
    source = source.strip()
    target = target.strip()
    content = body.strip()

    if content.startswith("ack") and len(content) <= MAX_ACK_LENGTH:
        return AckPacket(source, target, content[3:], timestamp=timestamp)

    content, msg_id = _split_msgid(content)
    return MessagePacket(source, target, content.strip(), msg_id, timestamp=timestamp)


def parse_login_response(line, tz=None):
    """
    Parse a '# logresp CALLSIGN verified, server XXXX' server comment.
    Returns None for any other line.
    """
    if not line or not line.startswith("# logresp"):
        return None
    line = line.rstrip("\r\n")

    words = line.split()
    callsign = words[2].upper() if len(words) > 2 else ""
    verified = " verified" in line and "unverified" not in line

    server = None
    marker = line.find("server ")
    if marker >= 0:
        tail = line[marker + len("server "):].split()
        server = tail[0] if tail else None

    return LoginResponse(callsign, verified, server, raw=line, timestamp=receipt_time(tz))
