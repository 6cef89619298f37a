"""APRS-IS chat client."""
