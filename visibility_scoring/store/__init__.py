"""Persistence boundary: the ResultStore interface and its SQLAlchemy implementation."""
