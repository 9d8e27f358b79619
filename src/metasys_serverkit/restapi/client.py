"""Metasys REST API client.

Provides an async HTTP client with login, bearer-token authentication and
lazily paginated access to the server's collection resources.
"""

import socket
import ssl
import time
from collections.abc import AsyncIterator, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

import httpx
import structlog

from .. import sequences
from .pagination import PagedCollection
from .types import LoginResponse

logger = structlog.get_logger(__name__)

API_PATH = "/api/v1"

DEFAULT_SCHEME = "https"

DEFAULT_PAGE_SIZE = 1000

# Device class ids of supervisory engines (NAE, NCE, ADS, ...).
ENGINE_CLASS_IDS = (
    872, 871, 873, 877, 448, 613, 751, 192, 185,
    610, 651, 193, 358, 611, 769, 425, 753, 752,
)  # fmt: skip

_UNKNOWN_HOST_MARKERS = (
    "Name or service not known",
    "nodename nor servname provided",
    "getaddrinfo failed",
    "No address associated with hostname",
    "Temporary failure in name resolution",
)


class NotLoggedInError(RuntimeError):
    """Raised when data is requested before a successful login."""


class LoginFailure(str, Enum):
    """Likely cause of a failed login."""

    CONNECTION = "connection"
    UNKNOWN_HOST = "unknown_host"
    BAD_CREDENTIALS = "bad_credentials"
    UNTRUSTED_CERTIFICATE = "untrusted_certificate"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class Session:
    """Credential and request options established by a successful login."""

    base_url: str
    access_token: str
    options: Mapping[str, Any] = field(default_factory=dict)
    expires: datetime | None = None


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_login_error(exc: BaseException) -> LoginFailure:
    """Work out the most likely cause of a login error.

    Status errors are judged by their status code; transport errors by the
    exceptions in their cause chain and, failing that, by their messages.

    Args:
        exc: Exception raised while logging in.

    Returns:
        The matching LoginFailure, UNCLASSIFIED if nothing matches.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.is_client_error:
            return LoginFailure.BAD_CREDENTIALS
        return LoginFailure.UNCLASSIFIED

    chain = list(_exception_chain(exc))
    text = " ".join(str(error) for error in chain)

    if (
        any(isinstance(error, ssl.SSLCertVerificationError) for error in chain)
        or "CERTIFICATE_VERIFY_FAILED" in text
    ):
        return LoginFailure.UNTRUSTED_CERTIFICATE
    if any(isinstance(error, socket.gaierror) for error in chain) or any(
        marker in text for marker in _UNKNOWN_HOST_MARKERS
    ):
        return LoginFailure.UNKNOWN_HOST
    if isinstance(exc, (httpx.ProxyError, httpx.ConnectError, httpx.ConnectTimeout)):
        return LoginFailure.CONNECTION
    return LoginFailure.UNCLASSIFIED


def describe_login_failure(
    failure: LoginFailure,
    host: str,
    exc: BaseException | None = None,
) -> str:
    """Return a human-readable diagnostic for a failed login."""
    if failure is LoginFailure.CONNECTION:
        return (
            "There was an issue establishing a connection to the server. "
            "This error is consistent with a proxy server being configured "
            "when accessing a local server."
        )
    if failure is LoginFailure.UNKNOWN_HOST:
        return f"Unknown server '{host}'."
    if failure is LoginFailure.BAD_CREDENTIALS:
        return (
            "There was an issue logging in. Your credentials may have been "
            "incorrect. Please try again."
        )
    if failure is LoginFailure.UNTRUSTED_CERTIFICATE:
        return (
            "The server is using a self-signed cert that is not trusted. "
            "If you trust this server, configure your computer to trust its "
            "certificate."
        )
    return f"Login failed: {exc!r}" if exc is not None else "Login failed."


def encode_params(params: Mapping[str, Any]) -> dict[str, Any]:
    """Prepare query parameters for httpx.

    Drops ``None`` values and renders dates and datetimes in ISO 8601.
    """
    encoded = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, date):
            value = value.isoformat()
        encoded[key] = value
    return encoded


class MetasysServerApi:
    """Async HTTP client for the Metasys REST API.

    Call :meth:`login` first; every other call uses the bearer token and
    request options established by it. Collection methods return
    :class:`PagedCollection` objects which fetch pages only as they are
    iterated. Can be used as an async context manager for cleanup.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        *,
        scheme: str = DEFAULT_SCHEME,
        page_size: int = DEFAULT_PAGE_SIZE,
        options: Mapping[str, Any] | None = None,
    ):
        """Initialize the API client.

        Args:
            transport: Transport used for every request. Defaults to the
                httpx network transport.
            scheme: URL scheme of the server (default: https).
            page_size: Default ``pageSize`` for alarms and devices.
            options: Keyword options for ``httpx.AsyncClient`` applied to
                every request (e.g. ``verify`` with a CA bundle path).

        Raises:
            ValueError: If page_size is not positive.
        """
        if page_size <= 0:
            msg = "page_size must be positive"
            raise ValueError(msg)

        self.scheme = scheme
        self.page_size = page_size
        self._transport = transport
        self._options = dict(options or {})
        self._http: httpx.AsyncClient | None = None
        self.session: Session | None = None
        self.last_login_failure: LoginFailure | None = None

    async def __aenter__(self):
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager and cleanup resources."""
        await self.aclose()

    async def aclose(self):
        """Close the authenticated HTTP client if open."""
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()

    @property
    def is_logged_in(self) -> bool:
        """True once a login has succeeded."""
        return self.session is not None

    def _build_client(
        self,
        base_url: str,
        options: Mapping[str, Any],
    ) -> httpx.AsyncClient:
        kwargs = dict(options)
        kwargs["base_url"] = base_url
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    async def login(
        self,
        user: str,
        password: str,
        host: str,
        options: Mapping[str, Any] | None = None,
    ) -> bool:
        """Log into the server and establish a session.

        Failures are never raised. The likely cause is stored in
        ``last_login_failure`` and a diagnostic is logged.

        Args:
            user: Name of the account used to access the server.
            password: Password of the account.
            host: Hostname or IP address of the server.
            options: Extra ``httpx.AsyncClient`` options for this session,
                merged over the defaults given to the constructor.

        Returns:
            True if the login succeeded, False otherwise.
        """
        client_options = {**self._options, **(options or {})}
        base_url = f"{self.scheme}://{host}{API_PATH}"
        payload = {"username": user, "password": password}
        http: httpx.AsyncClient | None = None

        try:
            http = self._build_client(base_url, client_options)
            # POSTs don't follow redirects by default
            response = await http.post("/login", json=payload, follow_redirects=True)
            response.raise_for_status()
            result = LoginResponse.model_validate(response.json())
        except (httpx.HTTPError, httpx.InvalidURL, OSError, ValueError) as exc:
            if http is not None:
                await http.aclose()
            failure = classify_login_error(exc)
            self.last_login_failure = failure
            logger.warning(
                "Login failed",
                host=host,
                reason=failure.value,
                detail=describe_login_failure(failure, host, exc),
            )
            return False

        http.headers["Authorization"] = f"Bearer {result.access_token}"
        await self.aclose()
        self._http = http
        self.session = Session(
            base_url=base_url,
            access_token=result.access_token,
            options=client_options,
            expires=result.expires,
        )
        self.last_login_failure = None
        logger.info("Logged in", base_url=base_url, expires=result.expires)
        return True

    def _require_client(self) -> httpx.AsyncClient:
        if self.session is None or self._http is None:
            msg = "Must successfully login first"
            raise NotLoggedInError(msg)
        return self._http

    async def get(
        self,
        relative_url: str,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """Retrieve a resource and return its parsed JSON body.

        Args:
            relative_url: Address relative to the API base (absolute
                addresses are used as given).
            params: Optional query parameters.

        Returns:
            The decoded JSON response.

        Raises:
            NotLoggedInError: If called before a successful login.
            httpx.HTTPError: If the request fails or returns an error status.
        """
        http = self._require_client()
        start_time = time.time()
        logger.debug("Making API request", method="GET", url=relative_url, params=params)

        response = await http.get(
            relative_url,
            params=encode_params(params) if params else None,
        )
        response.raise_for_status()

        duration = time.time() - start_time
        logger.debug(
            "API request completed",
            url=relative_url,
            status_code=response.status_code,
            duration_seconds=round(duration, 3),
        )
        return response.json()

    def paginate(
        self,
        relative_url: str,
        params: Mapping[str, Any] | None = None,
    ) -> PagedCollection:
        """Return a lazily paginated view of a collection resource.

        Raises:
            NotLoggedInError: If called before a successful login.
        """
        self._require_client()
        return PagedCollection(self.get, relative_url, params)

    def devices(self, params: Mapping[str, Any] | None = None) -> PagedCollection:
        """Network devices of the site.

        Args:
            params: Optional query parameters (e.g. ``type``), merged over
                the default ``pageSize``.

        Returns:
            Lazily paginated collection of raw device objects.

        Raises:
            NotLoggedInError: If called before a successful login.
        """
        return self.paginate("/networkDevices", {"pageSize": self.page_size, **(params or {})})

    def supervisory_devices(self) -> AsyncIterator[Any]:
        """Yield the network devices of every supervisory engine class.

        One paginated fetch is made per class id, in ``ENGINE_CLASS_IDS``
        order.
        """
        return sequences.chain(
            *(self.devices({"type": class_id}) for class_id in ENGINE_CLASS_IDS)
        )

    def objects(
        self,
        params: Mapping[str, Any] | None = None,
        *,
        device_id: str | None = None,
        object_id: str | None = None,
    ) -> PagedCollection:
        """Objects contained by a network device or by another object.

        Raises:
            ValueError: If neither device_id nor object_id is given.
        """
        if device_id is not None:
            return self.paginate(f"/networkDevices/{device_id}/objects", params)
        if object_id is not None:
            return self.paginate(f"/objects/{object_id}/objects", params)
        msg = 'Must pass either "device_id" or "object_id" in calls to "objects".'
        raise ValueError(msg)

    def alarms(
        self,
        params: Mapping[str, Any] | None = None,
        *,
        device_id: str | None = None,
        object_id: str | None = None,
    ) -> PagedCollection:
        """Alarms of the whole site, of a network device or of an object.

        Site-wide alarms default to a window from local midnight today to
        now. Caller parameters override the defaults.
        """
        defaults: dict[str, Any] = {"pageSize": self.page_size}
        if device_id is not None:
            url = f"/networkDevices/{device_id}/alarms"
        elif object_id is not None:
            url = f"/objects/{object_id}/alarms"
        else:
            url = "/alarms"
            end_time = datetime.now().astimezone()
            # Midnight keeps its own UTC offset on daylight saving changes
            start_time = datetime.combine(end_time.date(), datetime.min.time()).astimezone()
            defaults["startTime"] = start_time
            defaults["endTime"] = end_time
        return self.paginate(url, {**defaults, **(params or {})})

    async def alarm(self, alarm_id: str) -> Any:
        """Fetch a single alarm.

        Args:
            alarm_id: Identifier of the alarm.

        Returns:
            The raw alarm object.

        Raises:
            NotLoggedInError: If called before a successful login.
            httpx.HTTPError: If the request fails or returns an error status.
        """
        return await self.get(f"/alarms/{alarm_id}")

    def audits(self, params: Mapping[str, Any] | None = None) -> PagedCollection:
        """Audit trail entries, filtered by the given query parameters."""
        return self.paginate("/audits", params)

    def equipment(self, params: Mapping[str, Any] | None = None) -> PagedCollection:
        """Equipment definitions, filtered by the given query parameters."""
        return self.paginate("/equipment", params)

    def spaces(self, params: Mapping[str, Any] | None = None) -> PagedCollection:
        """Spaces (buildings, floors, rooms), filtered by the given query parameters."""
        return self.paginate("/spaces", params)

    def trended_attributes(
        self,
        object_id: str,
        params: Mapping[str, Any] | None = None,
    ) -> PagedCollection:
        """Attributes of an object that have trend samples.

        Args:
            object_id: Identifier of the object.
            params: Optional query parameters.

        Returns:
            Lazily paginated collection of raw attribute objects.
        """
        return self.paginate(f"/objects/{object_id}/attributes", params)

    def samples(
        self,
        object_id: str,
        attribute_id: str | int,
        params: Mapping[str, Any] | None = None,
    ) -> PagedCollection:
        """Trend samples of one attribute of an object."""
        return self.paginate(f"/objects/{object_id}/attributes/{attribute_id}", params)
