from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .aprs import PacketError
from .clients import NotConnectedError
from .gps import PositionUnavailable
from .symbols import APRS_SYMBOLS


def create_app(session):
    app = Flask(__name__)
    CORS(app, resources={r"/*": {"origins": "*"}})

    def _json_body():
        return request.get_json(silent=True) or {}

    @app.errorhandler(NotConnectedError)
    def not_connected(e):
        app.logger.warning(f"Cannot send: {e}")
        return jsonify({"error": "Not connected to APRS-IS."}), 409

    @app.errorhandler(ValueError)
    def bad_request(e):
        # PacketError is a ValueError too
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(PositionUnavailable)
    def no_position(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(Exception)
    def internal_error(e):
        if isinstance(e, HTTPException):
            return e
        app.logger.error(f"🚨 ERROR in {request.path} route: {e}")
        return jsonify({"error": "Internal server error"}), 500

    @app.route('/health')
    def health_check():
        return jsonify({"status": "ok"}), 200

    @app.route('/status')
    def get_status():
        return jsonify(session.status())

    @app.route('/symbols')
    def get_symbols():
        return jsonify({"symbols": [s.to_dict() for s in APRS_SYMBOLS], "current": session.symbol})

    @app.route('/login', methods=['POST'])
    def login():
        body = _json_body()
        callsign, passcode = body.get("callsign"), body.get("passcode")
        if not isinstance(callsign, str) or not isinstance(passcode, str):
            raise ValueError("Callsign and passcode are required")
        session.login(callsign, passcode)
        return jsonify(session.status())

    @app.route('/logout', methods=['POST'])
    def logout():
        session.logout()
        return jsonify(session.status())

    @app.route('/contacts')
    def get_contacts():
        contacts = []
        for contact in session.history.contacts():
            last = session.history.last_message(contact)
            contacts.append({
                "callsign": contact,
                "last_msg": last["content"][:30] if last else "",
                "active": contact == session.current_contact,
            })
        return jsonify({"contacts": contacts})

    @app.route('/contacts', methods=['POST'])
    def add_contact():
        contact = session.add_contact(_json_body().get("callsign"))
        return jsonify({"callsign": contact}), 201

    @app.route('/messages/<contact>')
    def get_messages(contact):
        contact = contact.upper()
        session.select_contact(contact)
        return jsonify({"contact": contact, "messages": session.history.get(contact)})

    @app.route('/messages/<contact>', methods=['POST'])
    def send_message(contact):
        packet = session.send_message(_json_body().get("content"), contact)
        return jsonify({"packet": packet}), 201

    @app.route('/messages/<contact>', methods=['DELETE'])
    def delete_chat(contact):
        if not session.delete_chat(contact):
            return jsonify({"error": f"No conversation with {contact.upper()}"}), 404
        return jsonify({"deleted": contact.upper()})

    @app.route('/beacon', methods=['POST'])
    def send_beacon():
        body = _json_body()
        lat, lon = body.get("latitude"), body.get("longitude")
        if (lat is None) != (lon is None):
            raise PacketError("Both latitude and longitude are required")
        if lat is not None and lon is not None:
            try:
                lat, lon = float(lat), float(lon)
            except (TypeError, ValueError):
                raise PacketError(f"Invalid coordinates: {lat!r}, {lon!r}")
            if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
                raise PacketError(f"Position out of range: {lat}, {lon}")
        packet = session.send_beacon(lat, lon)
        return jsonify({"packet": packet, "last_beacon": session.last_beacon}), 201

    @app.route('/settings', methods=['POST'])
    def save_settings():
        body = _json_body()
        session.update_settings(passcode=body.get("passcode"), symbol=body.get("symbol"))
        return jsonify({"symbol": session.symbol})

    return app
