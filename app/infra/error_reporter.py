"""
Observability sink for pipeline failures and named events.

Reports go to Rollbar when ROLLBAR_ACCESS_TOKEN is set, and are always logged.
The reporter never raises into the caller: the pipeline must keep going
whether or not the sink is reachable.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import rollbar

logger = logging.getLogger(__name__)

_rollbar_initialized = False


class ErrorReporter:
    """Fire-and-forget error/event reporter."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        environment: str = "development",
    ) -> None:
        global _rollbar_initialized
        self._enabled = bool(access_token)
        if self._enabled and not _rollbar_initialized:
            # threaded handler: payloads are posted off the event loop
            rollbar.init(access_token, environment=environment, handler="thread")
            _rollbar_initialized = True

    @property
    def enabled(self) -> bool:
        return self._enabled

    def report(
        self, error: BaseException, context: Optional[dict[str, Any]] = None
    ) -> None:
        """Report an exception with a context map."""
        context = context or {}
        logger.error("Reported error: %r context=%s", error, context)
        if not self._enabled:
            return
        try:
            rollbar.report_exc_info(
                (type(error), error, error.__traceback__),
                extra_data=context,
            )
        except Exception as e:
            logger.warning("Failed to send error to Rollbar: %s", e)

    def event(
        self,
        name: str,
        context: Optional[dict[str, Any]] = None,
        level: str = "warning",
    ) -> None:
        """Report a named event (e.g. delivery_failed) that is not an exception."""
        context = context or {}
        logger.log(
            logging.getLevelName(level.upper()),
            "Reported event %s context=%s",
            name,
            context,
        )
        if not self._enabled:
            return
        try:
            rollbar.report_message(name, level=level, extra_data=context)
        except Exception as e:
            logger.warning("Failed to send event to Rollbar: %s", e)
