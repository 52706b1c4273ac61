"""
Oracle to Supabase Migration Tool

A resumable migration engine for moving reference and registration data
from an Oracle (or SQL Server) source into Supabase PostgreSQL, with
priority-ordered tasks, paged concurrent batches and foreign key resolution.
"""

__version__ = "0.2.0"
