"""Start/stop logging shared by the transports."""

from __future__ import annotations

from typing import Any, Callable, Mapping

from ..logging import get_logger

logger = get_logger(__name__)


def serve_logged(transport: str, context: Mapping[str, Any], serve: Callable[[], None]) -> None:
    """Run ``serve`` and log ``transport.<name>.{start,stop,interrupted,failed}``.

    Interrupts and failures are logged and re-raised.
    """

    extra = {"context": {"transport": transport, **context}}
    logger.info(f"transport.{transport}.start", extra=extra)
    try:
        serve()
    except KeyboardInterrupt:
        logger.info(f"transport.{transport}.interrupted", extra=extra)
        raise
    except Exception:
        logger.exception(f"transport.{transport}.failed", extra=extra)
        raise
    logger.info(f"transport.{transport}.stop", extra=extra)
