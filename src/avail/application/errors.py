"""Errors raised by port implementations. Use cases turn them into result DTOs."""

import logging


class AvailError(Exception):
    """Base class for adapter failures."""


class StoreError(AvailError):
    """The document store could not complete an operation (network, backend, rules)."""


class IdentityError(AvailError):
    """The identity provider could not complete an operation."""


def log_errors(what: str, logger: logging.Logger):
    """Default subscription error callback: log and keep the caller running."""

    def _on_error(error: StoreError) -> None:
        logger.warning("Live updates for %s failed: %s", what, error)

    return _on_error
