"""
Yanuka - Data layer for the Yanuka content app.

Lets app and admin code keep the document-store vocabulary it was written
against while the data lives in Supabase (Postgres).
"""

__version__ = "1.0.0"
