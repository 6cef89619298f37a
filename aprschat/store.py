"""
Persistence for saved credentials and chat history.

Values are kept in a small key-value table; the chat history is stored
as one JSON document under MESSAGES_KEY with the shape

    {contact_callsign: [{"source", "content", "type", "time"}, ...]}
"""
import os
import json
import logging
import sqlite3

logger = logging.getLogger(__name__)

SYSTEM_CHANNEL = "APRS-IS"

MESSAGES_KEY = "aprs_messages"
CALLSIGN_KEY = "aprs_callsign"
PASSCODE_KEY = "aprs_passcode"
SYMBOL_KEY = "aprs_symbol"

WELCOME = {
    "source": "System",
    "content": "Welcome to APRS Web Messenger. Connect to start messaging!",
    "type": "received",
    "time": "Now",
}


class KeyValueStore:
    def get(self, key, default=None):
        raise NotImplementedError

    def set(self, key, value):
        raise NotImplementedError

    def delete(self, key):
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self):
        self._data = {}

    def get(self, key, default=None):
        return self._data.get(key, default)

    def set(self, key, value):
        self._data[key] = value

    def delete(self, key):
        self._data.pop(key, None)


class SqliteStore(KeyValueStore):
    def __init__(self, dbfile):
        db_dir = os.path.dirname(dbfile) or "."
        if not os.path.isdir(db_dir):
            os.makedirs(db_dir, exist_ok=True)
        if not os.access(db_dir, os.W_OK):
            raise RuntimeError(f"Cannot write to database directory: {db_dir}")

        self.dbfile = dbfile
        self.db = sqlite3.connect(dbfile, check_same_thread=False)
        self.db.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT,
                timestamp DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """)
        self.db.commit()
        logger.info(f"Using database file: {dbfile}")

    def get(self, key, default=None):
        cur = self.db.execute("SELECT value FROM kv WHERE key = ?", (key,))
        row = cur.fetchone()
        return row[0] if row else default

    def set(self, key, value):
        self.db.execute(
            "INSERT OR REPLACE INTO kv (key, value, timestamp) VALUES (?, ?, CURRENT_TIMESTAMP)",
            (key, value),
        )
        self.db.commit()

    def delete(self, key):
        self.db.execute("DELETE FROM kv WHERE key = ?", (key,))
        self.db.commit()

    def close(self):
        self.db.close()


class MessageHistory:
    """Per-contact chat history backed by a KeyValueStore."""

    def __init__(self, store, max_messages=None):
        self.store = store
        self.max_messages = max_messages
        self.messages = {}

    def load(self):
        raw = self.store.get(MESSAGES_KEY)
        messages = None
        if raw:
            try:
                messages = json.loads(raw)
            except ValueError as e:
                logger.error(f"Failed to load messages: {e}")
        if not isinstance(messages, dict):
            messages = {SYSTEM_CHANNEL: [dict(WELCOME)]}
        self.messages = messages
        return self.messages

    def save(self):
        try:
            self.store.set(MESSAGES_KEY, json.dumps(self.messages))
        except (sqlite3.Error, TypeError) as e:
            logger.error(f"Failed to save messages: {e}")

    def contacts(self):
        return list(self.messages.keys())

    def get(self, contact):
        return self.messages.get(contact, [])

    def ensure_contact(self, contact):
        return self.messages.setdefault(contact, [])

    def add(self, contact, source, content, type_, time):
        conversation = self.ensure_contact(contact)
        conversation.append({"source": source, "content": content, "type": type_, "time": time})
        if self.max_messages and len(conversation) > self.max_messages:
            del conversation[:len(conversation) - self.max_messages]
        self.save()

    def delete(self, contact):
        if contact == SYSTEM_CHANNEL:
            raise ValueError("You cannot delete the system channel.")
        if self.messages.pop(contact, None) is None:
            return False
        self.save()
        return True

    def last_message(self, contact):
        conversation = self.get(contact)
        return conversation[-1] if conversation else None


def load_credentials(store):
    return store.get(CALLSIGN_KEY), store.get(PASSCODE_KEY)


def save_credentials(store, callsign, passcode):
    store.set(CALLSIGN_KEY, callsign)
    store.set(PASSCODE_KEY, passcode)
