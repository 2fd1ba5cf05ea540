"""
Feature modules for the club segment league.

Each feature is a self-contained module with:
- models.py - SQLAlchemy models
- repository.py - Data access (optional)
- service modules - Business logic
- schemas.py - Pydantic schemas (optional)
"""
