"""SQLite storage for users, feeds, follows and posts."""
