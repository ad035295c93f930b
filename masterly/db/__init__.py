"""Persistence adapters: SQLAlchemy models, sessions and stores."""
