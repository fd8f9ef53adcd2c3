"""
Memory Lane Backend — Application Package
==========================================

CRUD API for a personal diary: memories with an optional image each.

Layers:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │  Services (repository, uploads,     │  ← Validation, transactions
    │  image stores, schema manager)      │
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │   Database (engine, sessions)       │  ← Async SQLAlchemy
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
