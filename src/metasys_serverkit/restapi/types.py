"""Raw API response types for the Metasys REST API.

Pydantic models describing the envelopes returned by the server. Collection
items themselves are passed through untouched as parsed JSON.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class LoginResponse(BaseModel):
    """Body returned by ``POST /login``."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    expires: datetime | None = None


class Page(BaseModel):
    """One page of a collection resource.

    ``next`` is absent on the last page.
    """

    items: list[Any] = Field(default_factory=list)
    next: str | None = None
