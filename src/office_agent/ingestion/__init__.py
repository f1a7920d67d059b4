"""Ingestion pipeline components."""

from .parser import EmailParser

__all__ = ["EmailParser"]
