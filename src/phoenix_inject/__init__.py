"""Type-keyed dependency injection.

This package provides a small dependency injector: builders (functions or
classes) are registered under the type they produce, and resolving a type
recursively builds every dependency its builder declares, depth-first and
without caching.

Exports:
- `Injector`: registry of builders plus resolution and object population.
- `ResolutionError`: base class of every resolution failure.
- `BuilderNotFoundError`: a requested or transitively required type has no builder.
- `DependencyCycleError`: a type (directly or transitively) depends on itself.
- `PopulateTargetError`: `Injector.populate` was given something that is not a mutable object.
- `type_name`: renders a type key for diagnostics.
"""

from ._injector import (
    BuilderNotFoundError,
    DependencyCycleError,
    Injector,
    PopulateTargetError,
    ResolutionError,
    type_name,
)


__all__ = [
    "BuilderNotFoundError",
    "DependencyCycleError",
    "Injector",
    "PopulateTargetError",
    "ResolutionError",
    "type_name",
]
