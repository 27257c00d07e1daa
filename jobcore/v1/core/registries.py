from typing import TYPE_CHECKING, Generic, TypeVar

from jobcore.v1.core.exceptions import InvalidStateError

if TYPE_CHECKING:
    from jobcore.v1.infra.jobs.schemas import JobDefinition

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name.

        Names are unique: registering a name twice is an error and never
        replaces the existing implementation.
        """
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen in production mode"
            )
        if name in self._implementations:
            raise InvalidStateError(
                f'{self.name} handler "{name}" is already registered',
                details={"name": name},
            )
        self._implementations[name] = implementation

    def unregister(self, name: str) -> bool:
        """Remove an implementation. Returns False if it was not registered."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot unregister '{name}' in {self.name.lower()} registry: "
                "registry is frozen in production mode"
            )
        return self._implementations.pop(name, None) is not None

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def find(self, name: str) -> T | None:
        """Get an implementation by name, or None if it is not registered."""
        return self._implementations.get(name)

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._implementations

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Job Registry - background processing handlers
class JobRegistry(Registry["JobDefinition"]):
    """Registry of job definitions keyed by job name."""

    def __init__(self):
        super().__init__("Job")
