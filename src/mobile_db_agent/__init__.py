"""mobile-db-agent - stage and sync SQLite databases from mobile app sandboxes."""

__version__ = "0.1.0"
