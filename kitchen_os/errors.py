"""Exceptions raised by kitchen-os."""

from __future__ import annotations


class KitchenOSError(Exception):
    """Base class for all kitchen-os errors."""


class InputValidationError(KitchenOSError, ValueError):
    """Scheduler input is invalid (worker/station counts, empty selection, unschedulable steps).

    Nothing is scheduled when this is raised; retrying without correcting the input fails again.
    """


class ExtractionError(KitchenOSError, RuntimeError):
    """The external model could not turn the submitted content into a recipe."""


class ExtractionInProgressError(KitchenOSError, RuntimeError):
    """An extraction is already running for this owner."""


class PersistenceError(KitchenOSError, RuntimeError):
    """The recipe store rejected or could not complete an operation."""
