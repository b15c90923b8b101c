"""Exceptions raised by the index engine."""

from typing import Any


class IndexEngineError(Exception):
    """Base class for index engine failures."""


class InvalidInputError(IndexEngineError, ValueError):
    """Input rejected before any state was touched."""

    def __init__(self, message: str, raw_input: Any = None):
        super().__init__(message)
        self.raw_input = raw_input


class DataUnavailableError(IndexEngineError):
    """The quote/dividend source had nothing for the requested range."""


class CannotComputeError(IndexEngineError):
    """A value could not be derived from the data at hand."""
