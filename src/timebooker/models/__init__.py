"""Data models shared by the booking engine, portal adapter, and CLI."""
