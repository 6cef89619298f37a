import re
import unittest

import pytz

from aprschat import aprs


class EncoderTests(unittest.TestCase):
    def test_login_line(self):
        line = aprs.build_login_line("n0call", "12345", "MyClient", "1.0.0")
        self.assertEqual(line, "user N0CALL pass 12345 vers MyClient 1.0.0\r\n")

    def test_login_line_defaults_and_filter(self):
        line = aprs.build_login_line("9m2pju-10", "-1", aprs_filter="t/m")
        self.assertTrue(line.startswith("user 9M2PJU-10 pass -1 vers "))
        self.assertTrue(line.endswith(" filter t/m\r\n"))
        self.assertNotIn("\n", line[:-2])

    def test_message_packet(self):
        packet = aprs.build_message_packet("n0call", "target", "hello", "A1B2C")
        self.assertEqual(packet, "N0CALL>APJUMB,TCPIP*::TARGET   :hello{A1B2C\r\n")

    def test_message_packet_without_id(self):
        packet = aprs.build_message_packet("N0CALL", "9m2pju-10", "hi there")
        self.assertEqual(packet, "N0CALL>APJUMB,TCPIP*::9M2PJU-10:hi there\r\n")

    def test_addressee_longer_than_nine_is_rejected(self):
        with self.assertRaises(aprs.PacketError):
            aprs.build_message_packet("N0CALL", "9M2PJU-100", "hello")
        with self.assertRaises(ValueError):
            aprs.build_ack_packet("N0CALL", "TOOLONGCALL", "1")

    def test_ack_packet(self):
        packet = aprs.build_ack_packet("n0call", "target", "A1B2C")
        self.assertEqual(packet, "N0CALL>APJUMB,TCPIP*::TARGET   :ackA1B2C\r\n")

    def test_position_packet(self):
        packet = aprs.build_position_packet("n0call", 3.175, 101.67, "/>", "comment")
        self.assertEqual(packet, "N0CALL>APJUMB,TCPIP*:!0310.50N/10140.20E>comment\r\n")

    def test_position_packet_messaging_capable(self):
        packet = aprs.build_position_packet("N0CALL", 0.0, 0.0, "\\-", "", messaging=True)
        self.assertEqual(packet, "N0CALL>APJUMB,TCPIP*:=0000.00N\\00000.00E-\r\n")

    def test_generate_message_id(self):
        for _ in range(50):
            msg_id = aprs.generate_message_id()
            self.assertRegex(msg_id, r"^[A-Z0-9]{5}$")

    def test_length_policy(self):
        long_body = "x" * 80
        self.assertEqual(aprs.apply_length_policy(long_body, "send"), long_body)
        self.assertEqual(len(aprs.apply_length_policy(long_body, "truncate")), 67)
        self.assertEqual(aprs.apply_length_policy("short", "reject"), "short")
        with self.assertRaises(aprs.PacketError):
            aprs.apply_length_policy(long_body, "reject")
        with self.assertRaises(ValueError):
            aprs.apply_length_policy("short", "shout")


class EncodePositionTests(unittest.TestCase):
    def test_origin(self):
        self.assertEqual(aprs.encode_position(0, 0), ("0000.00N", "00000.00E"))

    def test_kuala_lumpur(self):
        self.assertEqual(aprs.encode_position(3.139, 101.6869), ("0308.34N", "10141.21E"))

    def test_southern_western_hemispheres(self):
        self.assertEqual(aprs.encode_position(-33.8688, -151.2093), ("3352.13S", "15112.56W"))

    def test_poles_and_antimeridian_fit_fields(self):
        self.assertEqual(aprs.encode_position(90.0, 180.0), ("9000.00N", "18000.00E"))
        self.assertEqual(aprs.encode_position(-90.0, -180.0), ("9000.00S", "18000.00W"))

    def test_exact_ties_round_half_up(self):
        self.assertEqual(aprs.encode_position(1.09375, 100.09375), ("0105.63N", "10005.63E"))
        self.assertEqual(aprs.encode_position(-1.09375, -100.09375), ("0105.63S", "10005.63W"))

    def test_minutes_rounding_up_to_sixty_carries(self):
        self.assertEqual(aprs.encode_position(3.9999999, 0), ("0400.00N", "00000.00E"))


class DecoderTests(unittest.TestCase):
    def test_blank_and_comment_lines(self):
        self.assertIsNone(aprs.parse_packet(""))
        self.assertIsNone(aprs.parse_packet("   "))
        self.assertIsNone(aprs.parse_packet("# comment"))
        self.assertIsNone(aprs.parse_packet("# logresp N0CALL verified, server T2TEST"))

    def test_ack(self):
        packet = aprs.parse_packet("N0CALL>APJUMB,TCPIP*::N1CALL   :ackA1B2C")
        self.assertIsInstance(packet, aprs.AckPacket)
        self.assertEqual(packet.type, "ack")
        self.assertEqual((packet.source, packet.target, packet.msg_id), ("N0CALL", "N1CALL", "A1B2C"))

    def test_message_with_id(self):
        packet = aprs.parse_packet("N0CALL>APJUMB,TCPIP*::N1CALL   :Hello there{A1B2C")
        self.assertIsInstance(packet, aprs.MessagePacket)
        self.assertEqual(packet.type, "message")
        self.assertEqual(packet.source, "N0CALL")
        self.assertEqual(packet.target, "N1CALL")
        self.assertEqual(packet.content, "Hello there")
        self.assertEqual(packet.msg_id, "A1B2C")

    def test_message_body_keeps_colons_and_invalid_ids(self):
        packet = aprs.parse_packet("N0CALL>APRS,qAR,W1XYZ::N1CALL   :time 12:30 ok{abc")
        self.assertEqual(packet.content, "time 12:30 ok{abc")
        self.assertIsNone(packet.msg_id)

        packet = aprs.parse_packet("N0CALL>APRS::N1CALL   :hello{123456")
        self.assertEqual(packet.content, "hello{123456")
        self.assertIsNone(packet.msg_id)

    def test_long_ack_like_body_is_a_message(self):
        packet = aprs.parse_packet("N0CALL>APRS::N1CALL   :acknowledged")
        self.assertEqual(packet.type, "message")
        self.assertEqual(packet.content, "acknowledged")

    def test_trailing_carriage_return(self):
        packet = aprs.parse_packet("N0CALL>APRS::N1CALL   :hi{7\r\n")
        self.assertEqual((packet.content, packet.msg_id), ("hi", "7"))

    def test_non_message_lines_are_other(self):
        for line in (
            "N0CALL>APJUMB,TCPIP*:!0310.50N/10140.20E>comment",
            "no separator at all",
            ">APRS::N1CALL:missing source",
            "N0CALL>::N1CALL:missing path",
            "N0CALL>APRS:::missing target",
        ):
            packet = aprs.parse_packet(line)
            self.assertIsInstance(packet, aprs.OtherPacket, line)
            self.assertEqual(packet.raw, line)

    def test_round_trip(self):
        line = aprs.build_message_packet("n0call", "n1call", "Hello world")
        packet = aprs.parse_packet(line)
        self.assertEqual(packet.source, "N0CALL")
        self.assertEqual(packet.target, "N1CALL")
        self.assertEqual(packet.content, "Hello world")
        self.assertIsNone(packet.msg_id)

    def test_parse_is_idempotent_except_timestamp(self):
        line = "N0CALL>APJUMB,TCPIP*::N1CALL   :Hello there{A1B2C"
        first = aprs.parse_packet(line).as_dict()
        second = aprs.parse_packet(line).as_dict()
        first.pop("timestamp")
        second.pop("timestamp")
        self.assertEqual(first, second)

    def test_timestamp_is_receipt_time(self):
        packet = aprs.parse_packet("N0CALL>APRS::N1CALL   :hi", tz=pytz.utc)
        self.assertTrue(re.match(r"^\d\d:\d\d:\d\d$", packet.timestamp))


class LoginResponseTests(unittest.TestCase):
    def test_verified(self):
        resp = aprs.parse_login_response("# logresp N0CALL verified, server T2TEST")
        self.assertEqual(resp.type, "login-response")
        self.assertTrue(resp.verified)
        self.assertEqual(resp.callsign, "N0CALL")
        self.assertEqual(resp.server, "T2TEST")

    def test_unverified(self):
        resp = aprs.parse_login_response("# logresp N0CALL unverified, server T2TEST\r\n")
        self.assertFalse(resp.verified)

    def test_other_lines(self):
        self.assertIsNone(aprs.parse_login_response("# aprsc 2.1.14"))
        self.assertIsNone(aprs.parse_login_response("N0CALL>APRS::N1CALL   :hi"))


if __name__ == "__main__":
    unittest.main()
