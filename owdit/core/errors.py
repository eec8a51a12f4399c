"""Exceptions raised at the ingestion and orchestration boundary.

The analysis functions themselves never raise on bad input; these cover
the collaborators that talk to explorers, RPC nodes and callers.
"""

from __future__ import annotations


class OwditError(Exception):
    """Base class for Owdit errors."""


class InvalidAddressError(OwditError, ValueError):
    """The supplied contract address is not a 20-byte hex address."""


class UnsupportedChainError(OwditError, ValueError):
    """No configuration exists for the requested chain id."""


class SourceFetchError(OwditError):
    """A block explorer or RPC request failed."""
