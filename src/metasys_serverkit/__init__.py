"""Metasys Serverkit.

Lightweight asynchronous client for the Metasys Server REST API that hides
server-side paging behind lazily fetched async sequences.
"""

__version__ = "0.1.0"
