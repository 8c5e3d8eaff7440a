from __future__ import annotations

import dataclasses
import inspect
import logging
import threading
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    ClassVar,
    TypeVar,
    cast,
    get_origin,
    get_type_hints,
    overload,
)


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, KeysView, Mapping

    T = TypeVar("T")

    TypeKey = Any


class ResolutionError(RuntimeError):
    pass


class BuilderNotFoundError(ResolutionError):
    def __init__(self, key: TypeKey, required_by: tuple[TypeKey, ...] = ()) -> None:
        self.key = key
        self.required_by = required_by
        msg = f"Builder not found for type {type_name(key)}"
        if required_by:
            msg += f" (required by {_format_path(required_by)})"
        super().__init__(msg)


class DependencyCycleError(ResolutionError):
    def __init__(self, cycle: tuple[TypeKey, ...]) -> None:
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {_format_path(cycle)}")


class PopulateTargetError(ResolutionError, TypeError):
    pass


@dataclass(frozen=True)
class Dependency:
    name: str
    key: TypeKey
    positional: bool
    default: Any = inspect.Parameter.empty

    @property
    def optional(self) -> bool:
        return self.default is not inspect.Parameter.empty


@dataclass(frozen=True)
class Registration:
    builder: Callable[..., object]
    provides: TypeKey | None
    dependencies: tuple[Dependency, ...]


class Injector:
    """Type-keyed dependency injector.

    - register builders (functions or classes) under the type they produce
    - resolve a type by recursively building its dependencies first
    - populate the public annotated fields of an existing object
    """

    def __init__(self) -> None:
        self._registrations: dict[TypeKey, Registration] = {}
        self._lock = threading.RLock()

    def register(self, builder: Callable[..., Any], *, provides: TypeKey | None = None) -> TypeKey:
        """Register a builder under the type it produces.

        Example:
          injector.register(make_config)             # def make_config() -> Config
          injector.register(Service)                 # class Service: def __init__(self, config: Config)
          injector.register(lambda: 8080, provides=Port)

        Every annotated parameter is a dependency resolved by its annotation. A
        parameter that also has a default falls back to it when no builder is
        registered for its type. The last registration for a given type wins.
        """
        reg = _inspect_builder(builder, provides=provides, require_result=True)
        key = reg.provides

        with self._lock:
            if key in self._registrations:
                logger.debug("Replacing builder for type %s with %r", type_name(key), builder)
            self._registrations[key] = reg

        return key

    def registered_types(self) -> KeysView[TypeKey]:
        """Read-only view over the currently registered types."""
        return self._registrations.keys()

    def show_available_builders(self) -> None:
        with self._lock:
            keys = list(self._registrations)
        for key in keys:
            logger.info("Builder for type: %s", type_name(key))

    def __contains__(self, key: object) -> bool:
        return key in self._registrations

    @overload
    def resolve(self, key: type[T]) -> T: ...

    @overload
    def resolve(self, key: TypeKey) -> object: ...

    def resolve(self, key: TypeKey) -> object:
        """Build a value of `key`, building every dependency of its builder first.

        Dependencies are built depth-first in the order the builder declares
        them. Nothing is cached: each occurrence of a type in the dependency
        tree gets its own instance.
        """
        return self._resolve(key, ())

    def get_like(self, sample: object) -> object:
        """Resolve the type of `sample`."""
        return self.resolve(type(sample))

    def call(self, builder: Callable[..., T]) -> T:
        """Invoke an unregistered builder with its dependencies resolved."""
        reg = _inspect_builder(builder, provides=None, require_result=False)
        return cast("T", self._invoke(reg, ()))

    def populate(self, target: object, manifest: Mapping[str, TypeKey] | None = None) -> None:
        """Assign a freshly resolved value to every injectable field of `target`.

        Injectable fields are the public (not underscore-prefixed), writable,
        non-ClassVar annotations of the target's class, unless an explicit
        `manifest` of attribute names to types is given.
        """
        _check_populate_target(target)

        fields = dict(manifest) if manifest is not None else _injectable_fields(type(target))
        for name, key in fields.items():
            value = self.resolve(key)
            setattr(target, name, value)
            logger.debug("Populated %s.%s with %s", type(target).__qualname__, name, type_name(key))

    def _resolve(self, key: TypeKey, path: tuple[TypeKey, ...]) -> object:
        if key in path:
            start = path.index(key)
            raise DependencyCycleError((*path[start:], key))

        reg = self._registrations.get(key)
        if reg is None:
            raise BuilderNotFoundError(key, path)

        logger.debug("Building %s", type_name(key))
        return self._invoke(reg, (*path, key))

    def _invoke(self, reg: Registration, path: tuple[TypeKey, ...]) -> object:
        args: list[Any] = []
        kwargs: dict[str, Any] = {}

        for dep in reg.dependencies:
            if dep.optional and dep.key not in self._registrations:
                logger.debug("No builder for %s, using default of '%s'", type_name(dep.key), dep.name)
                if dep.positional:
                    args.append(dep.default)
                continue

            value = self._resolve(dep.key, path)
            if dep.positional:
                args.append(value)
            else:
                kwargs[dep.name] = value

        return reg.builder(*args, **kwargs)


def type_name(key: TypeKey) -> str:
    """Human readable name of a type key, used in diagnostics."""
    if inspect.isclass(key) and get_origin(key) is None:
        return key.__qualname__
    return repr(key)


def _format_path(path: tuple[TypeKey, ...]) -> str:
    return " -> ".join(type_name(key) for key in path)


def _inspect_builder(
    builder: Callable[..., Any],
    *,
    provides: TypeKey | None,
    require_result: bool,
) -> Registration:
    if not callable(builder):
        msg = f"Builder must be callable, got {builder!r}"
        raise TypeError(msg)

    sig = _builder_signature(builder)
    result = builder if inspect.isclass(builder) else sig.return_annotation

    if provides is not None:
        result = provides

    if require_result:
        if result is inspect.Signature.empty:
            msg = f"Cannot tell which type {_builder_name(builder)} builds: annotate its return type or pass provides="
            raise TypeError(msg)
        if result is None or result is type(None):
            msg = f"Builder {_builder_name(builder)} must build a value, not None"
            raise TypeError(msg)

    dependencies: list[Dependency] = []
    for name, p in sig.parameters.items():
        if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
            continue

        if p.annotation is p.empty:
            if p.default is not p.empty and p.kind is not p.POSITIONAL_ONLY:
                continue
            msg = (
                f"Cannot satisfy parameter '{name}' of {_builder_name(builder)}: "
                "dependencies must be annotated with the type to inject."
            )
            raise TypeError(msg)

        dependencies.append(
            Dependency(name=name, key=p.annotation, positional=p.kind is p.POSITIONAL_ONLY, default=p.default)
        )

    return Registration(
        builder=builder,
        provides=None if result is inspect.Signature.empty else result,
        dependencies=tuple(dependencies),
    )


def _builder_name(builder: Callable[..., Any]) -> str:
    return getattr(builder, "__qualname__", repr(builder))


def _builder_signature(builder: Callable[..., Any]) -> inspect.Signature:
    """Signature of the call the injector will make, with string annotations evaluated.

    Covers plain functions, `functools.partial`, callable instances, and classes
    whose constructor comes from `__new__`, `__init__` or `__signature__`.
    """
    try:
        sig = inspect.signature(builder, eval_str=True)
    except ValueError:
        # Some builtins expose no signature; treat them as leaf builders.
        return inspect.Signature()
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s signature", exc.name, _builder_name(builder))
        msg = f"Cannot evaluate annotation '{exc.name}' of builder {_builder_name(builder)}"
        raise TypeError(msg) from exc

    if inspect.isclass(builder) and _is_variadic_only(sig):
        # A pass-through __new__(cls, *args, **kwargs) hides the __init__ that
        # actually receives the arguments.
        init_sig = _get_init_signature(builder)
        if init_sig is not None:
            return init_sig

    return sig


def _is_variadic_only(sig: inspect.Signature) -> bool:
    params = sig.parameters.values()
    return bool(params) and all(p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD) for p in params)


def _get_init_signature(cls: type) -> inspect.Signature | None:
    init = inspect.getattr_static(cls, "__init__", None)
    if not inspect.isfunction(init):
        return None

    try:
        sig = inspect.signature(init, eval_str=True)
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s (%s) type hints", exc.name, cls.__name__, cls.__qualname__)
        msg = f"Cannot evaluate annotation '{exc.name}' of {cls.__qualname__}.__init__"
        raise TypeError(msg) from exc

    # drop self
    params = list(sig.parameters.values())[1:]
    return sig.replace(parameters=params, return_annotation=inspect.Signature.empty)


def _check_populate_target(target: object) -> None:
    if inspect.isclass(target):
        msg = f"Value passed to populate is a class ({target.__qualname__}), not an instance of a struct"
        raise PopulateTargetError(msg)

    cls = type(target)
    if cls.__module__ == "builtins" or (not hasattr(target, "__dict__") and not hasattr(cls, "__slots__")):
        msg = f"Value passed to populate is not a struct: {cls.__qualname__}"
        raise PopulateTargetError(msg)

    if isinstance(target, tuple):
        msg = f"Value passed to populate is immutable: {cls.__qualname__}"
        raise PopulateTargetError(msg)

    if dataclasses.is_dataclass(target) and cls.__dataclass_params__.frozen:  # type: ignore[attr-defined]
        msg = f"Value passed to populate is a frozen dataclass: {cls.__qualname__}"
        raise PopulateTargetError(msg)


def _injectable_fields(cls: type) -> dict[str, TypeKey]:
    try:
        hints = get_type_hints(cls)
    except NameError as exc:
        msg = f"Cannot evaluate annotation '{exc.name}' of {cls.__qualname__}"
        raise PopulateTargetError(msg) from exc

    fields: dict[str, TypeKey] = {}
    for name, ann in hints.items():
        if name.startswith("_"):
            continue
        if ann is ClassVar or get_origin(ann) is ClassVar:
            continue

        attr = inspect.getattr_static(cls, name, None)
        if isinstance(attr, property) and attr.fset is None:
            continue

        fields[name] = ann

    return fields
