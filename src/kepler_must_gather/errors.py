"""Error taxonomy for a gather run."""

from __future__ import annotations


class GatherError(Exception):
    """Base class for collection errors."""


class QueryError(GatherError):
    """A cluster read, exec, log or token request failed."""


class ResourceNotFound(QueryError):
    """The requested resource (or resource kind) does not exist on the cluster."""


class DiscoveryError(GatherError):
    """A value needed by a later stage could not be derived."""


class FatalIOError(GatherError):
    """The bundle destination could not be created."""
