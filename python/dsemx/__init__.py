"""Specification compiler and path-algebra engine for dynamic structural equation models."""

from __future__ import annotations

from .errors import (
    DivergentSeriesError,
    DuplicateArrowError,
    GrammarError,
    InvalidLagError,
    ModelSpecificationError,
    NonIdentifiableStructureError,
    SelfLoopError,
    StartValueConflictWarning,
    StructuralSolutionError,
    UnknownVariableError,
)
from .options import DsemOptions
from .equations import ArrowTriple, convert_equations, equations_to_arrows
from .specification import (
    ArrowKind,
    ArrowSpec,
    CompiledSpecification,
    ParameterTable,
    StartValueConflict,
    compile_equations,
    compile_specification,
)
from .matrices import PathMatrixSet, assemble
from .effects import (
    companion_matrix,
    cumulative_effect_matrix,
    cumulative_effects,
    is_stable,
    long_run_effects,
    reduced_form,
    spectral_radius,
    total_effect_matrices,
    total_effects,
)
from .simulate import simulate
from .model import DsemFit, DsemFitSummary, DsemModel, EngineResult

__all__ = [
    "__version__",
    "DsemModel",
    "DsemFit",
    "DsemFitSummary",
    "EngineResult",
    "DsemOptions",
    "ArrowTriple",
    "convert_equations",
    "equations_to_arrows",
    "ArrowKind",
    "ArrowSpec",
    "CompiledSpecification",
    "ParameterTable",
    "StartValueConflict",
    "compile_specification",
    "compile_equations",
    "PathMatrixSet",
    "assemble",
    "reduced_form",
    "companion_matrix",
    "spectral_radius",
    "is_stable",
    "total_effect_matrices",
    "total_effects",
    "cumulative_effect_matrix",
    "cumulative_effects",
    "long_run_effects",
    "simulate",
    "ModelSpecificationError",
    "GrammarError",
    "UnknownVariableError",
    "InvalidLagError",
    "SelfLoopError",
    "DuplicateArrowError",
    "NonIdentifiableStructureError",
    "DivergentSeriesError",
    "StartValueConflictWarning",
    "StructuralSolutionError",
]

__version__ = "0.0.0.dev0"
