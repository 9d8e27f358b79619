"""Configuration and logging setup for Metasys Serverkit."""

import json
import logging
import os
import pathlib
import ssl

import httpx
import pydantic
import structlog

from . import restapi

CONFIG_ENV_VAR = "METASYS_SERVERKIT_CONFIG_PATH"
logger = structlog.get_logger(__name__)


class LoginError(RuntimeError):
    """Raised by :func:`connect` when the server rejects the login."""

    def __init__(self, failure: restapi.LoginFailure, message: str):
        super().__init__(message)
        self.failure = failure


class ClientConfig(pydantic.BaseModel):
    """Connection settings for a Metasys Server."""

    host: str = pydantic.Field(description="Hostname or IP address of the server")
    username: str = pydantic.Field(description="Account used to log in")
    password: str = pydantic.Field(description="Password of the account")
    scheme: str = pydantic.Field("https", description="URL scheme of the server")
    verify: bool | str = pydantic.Field(
        True,
        description="Verify TLS certificates, or path to a CA bundle",
    )
    timeout: float | None = pydantic.Field(
        None,
        description="Request timeout in seconds, httpx default if unset",
        gt=0,
    )
    page_size: int = pydantic.Field(
        restapi.DEFAULT_PAGE_SIZE,
        description="Default page size for alarms and devices",
        gt=0,
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")

    def client_options(self) -> dict:
        """Keyword options for the underlying httpx client."""
        verify = self.verify
        if isinstance(verify, str):
            verify = ssl.create_default_context(cafile=verify)
        options: dict = {"verify": verify}
        if self.timeout is not None:
            options["timeout"] = self.timeout
        return options


def configure_logging(log_level_name: str) -> None:
    """Configure structlog for logfmt output."""
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def load_config(config_path: str | None = None) -> ClientConfig:
    """Load configuration from a JSON file or the environment default."""
    resolved_path = config_path or os.environ.get(CONFIG_ENV_VAR)
    if not resolved_path:
        msg = f"No configuration file given and {CONFIG_ENV_VAR} is not set"
        raise FileNotFoundError(msg)

    path = pathlib.Path(resolved_path)
    if not path.exists():
        msg = f"Configuration file not found: {resolved_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    return ClientConfig(**data)


async def connect(
    config: ClientConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> restapi.MetasysServerApi:
    """Construct a logged-in API client from validated config.

    Logging is left to the caller; see :func:`configure_logging`.

    Raises:
        LoginError: If the login fails.
    """
    api = restapi.MetasysServerApi(
        transport,
        scheme=config.scheme,
        page_size=config.page_size,
        options=config.client_options(),
    )
    if not await api.login(config.username, config.password, config.host):
        failure = api.last_login_failure or restapi.LoginFailure.UNCLASSIFIED
        raise LoginError(failure, restapi.describe_login_failure(failure, config.host))

    logger.info("Connected to Metasys Server", host=config.host)
    return api
