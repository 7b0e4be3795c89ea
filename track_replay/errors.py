"""Exception types raised by track_replay."""

from __future__ import annotations


class TrackReplayError(Exception):
    """Base class for all errors of this package."""


class NoSectionSelected(TrackReplayError):
    """An operation needs a selected section but none is active."""


class EmptySection(TrackReplayError):
    """The section has no entry with a usable position."""


class MalformedEntry(TrackReplayError, ValueError):
    """A raw record cannot be turned into an Entry."""


class AcquisitionError(TrackReplayError):
    """Fetching data from the tracker service failed."""
