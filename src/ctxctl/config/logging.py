"""structlog configuration for ctxctl.

Two output modes, both on stderr so stdout stays reserved for bundles:
- Human (default): colored console output when attached to a TTY
- JSON (--log-json): one structured JSON object per line

Library code logs through stdlib ``logging.getLogger(__name__)`` or
``structlog.get_logger(__name__)``; both end up in the same handler.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

CTX_LOGGER = "ctxctl"


def configure_logging(
    *,
    verbose: bool = False,
    log_json: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog processors and output routing.

    Safe to call repeatedly: the root handler is replaced, never stacked.

    Args:
        verbose: Enable DEBUG-level output for ``ctxctl.*``. When False,
            only WARNING+.
        log_json: Use the JSON renderer instead of the console renderer.
        stream: Destination (default: ``sys.stderr`` at call time).
    """
    out = stream or sys.stderr
    ctx_level = logging.DEBUG if verbose else logging.WARNING

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: structlog.types.Processor
    if log_json:
        renderer = structlog.processors.JSONRenderer()
        final_processors: list[structlog.types.Processor] = [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ]
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=out.isatty())
        final_processors = [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=final_processors,
    )

    handler = logging.StreamHandler(out)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)

    logging.getLogger(CTX_LOGGER).setLevel(ctx_level)
