"""Helpdesk ticket lifecycle and approval backend."""

__version__ = "0.1.0"
