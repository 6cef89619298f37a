import sys
import os
import time
import hashlib
import logging
import threading
import configparser

import pytz
from cronex import CronExpression

from . import aprs
from . import store
from .clients import AprsIsClient, NotConnectedError
from .gps import StaticPosition, PositionUnavailable
from .session import ChatSession
from .symbols import parse_symbol

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "aprschat.conf"
RECONNECT_DELAY = 5

DEFAULTS = {
    "aprs": {
        "callsign": "",
        "passcode": "",
        "symbol": "/>",
        "comment": "Web Beacon",
        "long_message": "send",
        "timezone": "",
    },
    "aprs_is": {
        "addr": "rotate.aprs2.net",
        "port": "14580",
        "filter": "",
    },
    "beacon": {
        "interval": "0",
        "rule": "",
        "latitude": "",
        "longitude": "",
        "messaging": "no",
    },
    "store": {
        "dbfile": "aprschat.db",
        "max_messages": "500",
    },
    "api": {
        "enabled": "no",
        "host": "127.0.0.1",
        "port": "8081",
    },
    "logging": {
        "level": "INFO",
        "file": "",
    },
}


def load_config(config_file):
    cfg = configparser.ConfigParser()
    cfg.optionxform = str
    cfg.read_dict(DEFAULTS)
    if not cfg.read(config_file):
        logger.warning(f"Config file {config_file} not found — using defaults")
    return cfg


def get_timezone(name):
    if not name:
        return None
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone '{name}' — using local time")
        return None


def setup_logging(cfg):
    handlers = [logging.StreamHandler(sys.stdout)]
    log_file = cfg.get("logging", "file", fallback="").strip()
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    level = getattr(logging, cfg.get("logging", "level", fallback="INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=handlers,
    )


class AprsChatApp:
    def __init__(self, config_file=DEFAULT_CONFIG_FILE, kv_store=None, client=None):
        self._config_file = config_file
        self._cfg = load_config(config_file)
        self._config_mtime = 0.0
        self._config_hash = None

        if kv_store is None:
            kv_store = store.SqliteStore(self._cfg.get("store", "dbfile"))
        self.kv_store = kv_store

        history = store.MessageHistory(
            kv_store, max_messages=self._cfg.getint("store", "max_messages", fallback=500)
        )
        history.load()

        if client is None:
            client = AprsIsClient(
                addr=self._cfg.get("aprs_is", "addr"),
                port=self._cfg.getint("aprs_is", "port"),
                callsign=self._cfg.get("aprs", "callsign"),
                passcode=self._cfg.get("aprs", "passcode"),
                aprs_filter=self._cfg.get("aprs_is", "filter"),
            )
        self.client = client
        self.client.on_disconnect = self.on_disconnect

        self.position = StaticPosition.from_config(self._cfg)
        self.session = ChatSession(client, kv_store, history, position_source=self.position)

        self._last_beacon = time.monotonic()
        self._last_cron_minute = None
        self._last_reconnect_attempt = 0.0
        self._beacon_rule = None

        self._load_config()
        self._check_updated_config()

    def _load_config(self):
        cfg = self._cfg
        session = self.session

        session.comment = cfg.get("aprs", "comment")
        session.tz = get_timezone(cfg.get("aprs", "timezone").strip())
        session.messaging = cfg.getboolean("beacon", "messaging", fallback=False)

        policy = cfg.get("aprs", "long_message").strip().lower()
        if policy not in aprs.LENGTH_POLICIES:
            logger.warning(f"Invalid long_message policy '{policy}', using 'send'")
            policy = "send"
        session.long_message = policy

        if not self.kv_store.get(store.SYMBOL_KEY):
            try:
                session.symbol = parse_symbol(cfg.get("aprs", "symbol")).code
            except ValueError as e:
                logger.warning(f"Invalid symbol in config: {e}")

        try:
            self.beacon_interval = cfg.getint("beacon", "interval", fallback=0)
        except ValueError as e:
            logger.warning(f"Invalid beacon interval value in config, disabling: {e}")
            self.beacon_interval = 0

        rule = cfg.get("beacon", "rule", fallback="").strip()
        self._beacon_rule = None
        if rule:
            try:
                self._beacon_rule = CronExpression(rule)
            except ValueError as e:
                logger.error(f"Invalid beacon rule '{rule}': {e}")

        self.client.filter = cfg.get("aprs_is", "filter")
        self.position = StaticPosition.from_config(cfg)
        session.position_source = self.position

    def _check_updated_config(self):
        try:
            mtime = os.stat(self._config_file).st_mtime
        except OSError:
            return

        def _get_config_hash(file_path):
            try:
                with open(file_path, "rb") as f:
                    return hashlib.md5(f.read()).hexdigest()
            except OSError as e:
                logger.error(f"Failed to hash config file: {e}")
                return None

        new_hash = _get_config_hash(self._config_file)
        if self._config_mtime != mtime and new_hash != self._config_hash:
            self._cfg = load_config(self._config_file)
            self._load_config()
            self._config_mtime = mtime
            self._config_hash = new_hash
            logger.info("Configuration reloaded")

    def start(self):
        """Log in with the configured or the previously saved credentials."""
        callsign = self._cfg.get("aprs", "callsign").strip()
        passcode = self._cfg.get("aprs", "passcode").strip()
        if not callsign or not passcode:
            callsign, passcode = store.load_credentials(self.kv_store)
        if not callsign or not passcode:
            logger.warning("No callsign/passcode configured — waiting for login")
            return False
        self.session.login(callsign, passcode)
        return True

    def on_disconnect(self):
        logger.warning("Disconnected! Will try again soon...")

    def _check_reconnection(self, now_mono=None):
        if not self.session.callsign or self.session.verified is False:
            return
        if self.client.is_connected():
            return

        now_mono = time.monotonic() if now_mono is None else now_mono
        if now_mono < self._last_reconnect_attempt + RECONNECT_DELAY:
            return
        self._last_reconnect_attempt = now_mono

        logger.info("Trying to reconnect to APRS-IS")
        self.client.connect()
        logger.info(f"APRS-IS reconnected: {self.client.is_connected()}")

    def _update_beacon(self, now_mono=None, now_time=None):
        if not self.client.is_connected():
            return False

        now_mono = time.monotonic() if now_mono is None else now_mono
        now_time = time.time() if now_time is None else now_time

        due = False
        if self.beacon_interval > 0 and now_mono > self._last_beacon + self.beacon_interval:
            due = True

        minute = int(now_time // 60)
        if self._beacon_rule is not None and minute != self._last_cron_minute:
            self._last_cron_minute = minute
            cur_time = time.localtime(now_time)
            utc_offset = cur_time.tm_gmtoff / 3600
            if self._beacon_rule.check_trigger(cur_time[:5], utc_offset):
                due = True

        if not due:
            return False

        self._last_beacon = now_mono
        try:
            self.session.send_beacon()
        except PositionUnavailable as e:
            logger.warning(f"Beacon skipped: {e}")
            return False
        except NotConnectedError as e:
            logger.error(f"Beacon failed: {e}")
            return False
        return True

    def on_loop_hook(self):
        self._check_updated_config()
        self._check_reconnection()
        try:
            self.client.loop()
        except Exception as e:
            logger.exception(f"Error in APRS-IS client loop: {e}")
        self._update_beacon()

    def start_api(self):
        from .api import create_app

        host = self._cfg.get("api", "host")
        port = self._cfg.getint("api", "port")
        api = create_app(self.session)
        thread = threading.Thread(
            target=api.run, kwargs={"host": host, "port": port, "use_reloader": False}, daemon=True
        )
        thread.start()
        logger.info(f"HTTP API listening on {host}:{port}")
        return thread

    def run(self, poll_delay=0.1):
        if self._cfg.getboolean("api", "enabled", fallback=False):
            self.start_api()
        self.start()
        while True:
            self.on_loop_hook()
            if not self.client.is_connected():
                time.sleep(poll_delay)


def main(argv=None):
    argv = sys.argv if argv is None else argv
    config_file = argv[1] if len(argv) > 1 else DEFAULT_CONFIG_FILE

    setup_logging(load_config(config_file))
    app = AprsChatApp(config_file)
    try:
        app.run()
    except KeyboardInterrupt:
        logger.info("Interrupted. Exiting.")
        app.session.logout()
    return 0
