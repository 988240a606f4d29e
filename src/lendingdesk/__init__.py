"""Lending desk: book requests, approvals, loans and returns."""

__version__ = "0.1.0"
