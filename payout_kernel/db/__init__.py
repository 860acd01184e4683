"""Database infrastructure: declarative base, engine/session management, ORM guards."""
