"""Conduit: a RealWorld social blogging API built on FastAPI and SQLAlchemy."""
