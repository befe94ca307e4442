"""Resumable, audited pipeline for landing a SQL Server backup in a managed cloud database."""

__version__ = "0.1.0"
