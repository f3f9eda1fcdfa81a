"""Embedding vector encoding and dimension checks for sqlite-vec."""

from __future__ import annotations

from collections.abc import Sequence

import sqlite_vec


class DimensionMismatchError(ValueError):
    """Raised when a vector's length differs from the deployment dimension."""


def check_dimensions(vector: Sequence[float], dimensions: int | None) -> None:
    """Raise DimensionMismatchError if *vector* does not have *dimensions* entries.

    A *dimensions* of None disables the length check (sqlite-vec still rejects
    mismatched pairs at query time).
    """
    if not vector:
        raise DimensionMismatchError("embedding vector is empty")
    if dimensions is not None and len(vector) != dimensions:
        raise DimensionMismatchError(
            f"embedding has {len(vector)} dimensions, expected {dimensions}"
        )


def to_blob(vector: Sequence[float]) -> bytes:
    """Serialize a vector to the compact float32 blob sqlite-vec reads."""
    return sqlite_vec.serialize_float32(list(vector))
