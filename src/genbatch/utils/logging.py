import logging
import typing as t
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

_REDACTED_LOG_FIELDS = frozenset(
    {
        "api_key",
        "authorization",
        "credential",
        "headers",
        "secret",
    }
)


def redact_secrets(
    logger: t.Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """
    Replace credential-bearing values before an event is rendered.

    Parameters
    ----------
    logger : typing.Any
        Wrapped logger, unused.
    method_name : str
        Name of the log method, unused.
    event_dict : structlog.types.EventDict
        Event being processed.

    Returns
    -------
    structlog.types.EventDict
        Event with sensitive fields masked.
    """
    for key in _REDACTED_LOG_FIELDS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def setup_logging(*, level: int = logging.INFO, json_logs: bool = False) -> None:
    """
    Route genbatch structlog events through the standard library logger.

    Parameters
    ----------
    level : int
        Minimum level emitted by the ``genbatch`` logger.
    json_logs : bool
        Render one JSON object per line instead of the colored console format.
    """
    logging.basicConfig(format="%(message)s", level=logging.WARNING)
    logging.getLogger("genbatch").setLevel(level)
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            redact_secrets,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@contextmanager
def logging_context(**required_context: t.Any) -> Iterator[None]:
    """
    Bind context variables for nested log calls, keeping outer bindings.

    Parameters
    ----------
    **required_context : typing.Any
        Values to bind, e.g. ``job_id``. Keys already bound are left untouched.
    """
    current = structlog.contextvars.get_contextvars()
    to_bind = {key: value for key, value in required_context.items() if key not in current}
    if not to_bind:
        yield
        return
    with structlog.contextvars.bound_contextvars(**to_bind):
        yield
