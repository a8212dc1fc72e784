"""
Lyceum Backend — Application Package
======================================

What: Generic CRUD and media backend for the Lyceum site.
Who:  Imported by uvicorn (app.main:app) and pytest.

Architecture Note:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services + crud/ (query building) │  ← Filters, uploads, storage fallback
    ├─────────────────────────────────────┤
    │     Models (Beanie) & Schemas       │  ← Stored documents + API contracts
    ├─────────────────────────────────────┤
    │   Database (Motor, GridFS bucket)   │  ← Connection lifecycle
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
