from __future__ import annotations


class KestrelError(Exception):
    """Base class for errors raised by the matching engine."""


class ProviderUnavailableError(KestrelError):
    """The embedding or generation provider could not be reached or returned nothing usable."""


class NavigationError(KestrelError):
    """A page failed to load or a selector timed out."""


class DriverClosedError(KestrelError):
    """The browser driver is gone; the run cannot continue."""


class DimensionMismatchError(KestrelError, ValueError):
    """Two vectors of different length were compared."""


class InvalidTransitionError(KestrelError):
    """The automation state machine does not allow the requested transition."""
