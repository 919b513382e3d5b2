"""Exception and warning taxonomy shared by the compiler and the solver."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

__all__ = [
    "ModelSpecificationError",
    "GrammarError",
    "UnknownVariableError",
    "InvalidLagError",
    "SelfLoopError",
    "DuplicateArrowError",
    "StructuralSolutionError",
    "NonIdentifiableStructureError",
    "DivergentSeriesError",
    "StartValueConflictWarning",
]


class ModelSpecificationError(ValueError):
    """Raised when specification text or metadata are inconsistent.

    Parse-time subclasses carry the 1-based ``line`` number, the offending
    source ``text`` and, where one can be singled out, the offending ``token``.
    """

    def __init__(
        self,
        message: str,
        *,
        line: Optional[int] = None,
        text: Optional[str] = None,
        token: Optional[str] = None,
    ) -> None:
        self.message = message
        self.line = line
        self.text = text
        self.token = token
        super().__init__(self._render())

    def _render(self) -> str:
        if self.line is None:
            return self.message
        if self.text is None:
            return f"line {self.line}: {self.message}"
        return f"line {self.line}: {self.message}\n    {self.text.strip()}"


class GrammarError(ModelSpecificationError):
    """Malformed equation or arrow record."""


class UnknownVariableError(ModelSpecificationError):
    """An arrow names a variable outside the variable universe."""


class InvalidLagError(ModelSpecificationError):
    """A lag token is not a non-negative integer."""


class SelfLoopError(ModelSpecificationError):
    """A directed arrow from a variable to itself at lag 0."""


class DuplicateArrowError(ModelSpecificationError):
    """The same arrow (or covariance pair) is declared more than once."""


class StructuralSolutionError(ValueError):
    """Raised by the effect solver; ``variables`` names the offending subset."""

    variables: Tuple[str, ...] = ()


class NonIdentifiableStructureError(StructuralSolutionError):
    """``I - A_0`` is singular: a simultaneous block has unit feedback gain."""

    def __init__(self, message: str, variables: Sequence[str] = ()) -> None:
        self.variables = tuple(variables)
        if self.variables:
            message = f"{message} (implicated variables: {', '.join(self.variables)})"
        super().__init__(message)


class DivergentSeriesError(StructuralSolutionError):
    """The long-run effect series does not converge (spectral radius >= 1)."""

    def __init__(
        self,
        message: str,
        spectral_radius: float,
        variables: Sequence[str] = (),
    ) -> None:
        self.spectral_radius = float(spectral_radius)
        self.variables = tuple(variables)
        details = f"spectral radius {self.spectral_radius:.6g}"
        if self.variables:
            details += f"; non-decaying variables: {', '.join(self.variables)}"
        super().__init__(f"{message} ({details})")


class StartValueConflictWarning(UserWarning):
    """Arrows sharing a parameter supplied different explicit start values."""
