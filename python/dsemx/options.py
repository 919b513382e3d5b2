"""Numeric policy constants for compilation, assembly and effect solving."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Optional

__all__ = ["DsemOptions", "resolve_options"]


@dataclass(frozen=True)
class DsemOptions:
    """Tunable constants.

    Attributes
    ----------
    variance_floor : float
        Value used for lag-0 variance diagonal entries that no arrow sets.
    path_start : float
        Default start value for free directed arrows.
    variance_start : float
        Default start value for free two-headed arrows.
    singular_tolerance : float
        Reciprocal condition number below which ``I - A_0`` is singular.
    stability_tolerance : float
        A companion spectral radius of at least ``1 - stability_tolerance``
        is treated as non-stable.
    """

    variance_floor: float = 0.01
    path_start: float = 0.01
    variance_start: float = 1.0
    singular_tolerance: float = 1e-12
    stability_tolerance: float = 1e-10

    def __post_init__(self) -> None:
        if not self.variance_floor > 0:
            raise ValueError(f"variance_floor must be positive, got {self.variance_floor}")
        if not 0 < self.singular_tolerance < 1:
            raise ValueError(
                f"singular_tolerance must lie in (0, 1), got {self.singular_tolerance}"
            )
        if not 0 <= self.stability_tolerance < 1:
            raise ValueError(
                f"stability_tolerance must lie in [0, 1), got {self.stability_tolerance}"
            )


def resolve_options(options: Optional[DsemOptions] = None, **overrides: Any) -> DsemOptions:
    """Merge keyword overrides into ``options`` (or the defaults)."""
    base = options if options is not None else DsemOptions()
    if not overrides:
        return base
    known = {f.name for f in fields(DsemOptions)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise TypeError(f"Unknown option(s): {', '.join(unknown)}")
    return replace(base, **overrides)
