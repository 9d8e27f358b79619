"""Metasys REST API client package.

Provides a lightweight async HTTP client for the Metasys Server REST API
that hides server paging behind lazily fetched collections. Items are
returned as raw parsed JSON.

Exports:
    MetasysServerApi: HTTP client with login and collection endpoints.
    PagedCollection: Lazily paginated view of a collection resource.
    Session: Credential and options established by a login.
    LoginFailure: Classification of failed logins.
    NotLoggedInError: Raised when data is requested before login.
    types: Module containing Pydantic models for API responses.
"""

from . import types
from .client import (
    DEFAULT_PAGE_SIZE,
    ENGINE_CLASS_IDS,
    LoginFailure,
    MetasysServerApi,
    NotLoggedInError,
    Session,
    classify_login_error,
    describe_login_failure,
)
from .pagination import PagedCollection

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "ENGINE_CLASS_IDS",
    "LoginFailure",
    "MetasysServerApi",
    "NotLoggedInError",
    "PagedCollection",
    "Session",
    "classify_login_error",
    "describe_login_failure",
    "types",
]
