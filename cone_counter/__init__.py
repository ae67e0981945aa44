"""
Backend package for the cone counter API.

This package provides a FastAPI application that records timestamped
events per authenticated user, with interchangeable event stores
(in-memory, SQL via SQLAlchemy, Cloud Firestore) and Firebase-backed
authentication.
"""
