"""structlog setup for farmcast processes.

Resolution and settlement events are keyed by ``cycle_id``. The cycle
coordinator binds it as a context variable, so every event logged while a
cycle is revealed or closed carries it, including events from the stores
and feeds underneath. Events below ``level`` are dropped; ``json=True``
emits one JSON object per line for log shippers.
"""

import logging

import structlog

_configured = False


def configure_logging(level: str = "INFO", json: bool = False) -> None:
    """Configure structlog with the project-standard processor chain.

    Safe to call multiple times; only the first call takes effect.
    """
    global _configured
    if _configured:
        return
    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )
    _configured = True
