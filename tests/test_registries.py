import pytest

from jobcore.v1.core.exceptions import InvalidStateError
from jobcore.v1.core.registries import JobRegistry, Registry
from jobcore.v1.infra.jobs.schemas import JobDefinition


async def noop_handler(context):
    return None


def test_registry_basic_operations():
    """Test basic registry register, get, list operations."""
    registry = Registry[str]("Test")

    assert registry.list() == []

    registry.register("test_impl", "test_value")
    assert registry.get("test_impl") == "test_value"
    assert registry.list() == ["test_impl"]
    assert "test_impl" in registry

    with pytest.raises(KeyError, match="No test implementation registered"):
        registry.get("nonexistent")
    assert registry.find("nonexistent") is None


def test_registry_rejects_duplicate_names():
    """Registering a name twice fails and keeps the first implementation."""
    registry = Registry[str]("Job")
    registry.register("echo", "first")

    with pytest.raises(InvalidStateError, match='Job handler "echo" is already registered'):
        registry.register("echo", "second")

    assert registry.get("echo") == "first"


def test_registry_unregister():
    registry = Registry[str]("Test")
    registry.register("impl", "value")

    assert registry.unregister("impl") is True
    assert registry.unregister("impl") is False
    assert registry.list() == []


def test_registry_freeze():
    """Test registry freeze functionality."""
    registry = Registry[str]("Test")
    registry.register("before_freeze", "value")

    registry.freeze()
    assert registry.is_frozen()

    with pytest.raises(RuntimeError, match="registry is frozen"):
        registry.register("after_freeze", "value")
    with pytest.raises(RuntimeError, match="registry is frozen"):
        registry.unregister("before_freeze")

    assert registry.get("before_freeze") == "value"


def test_job_registry_holds_definitions():
    registry = JobRegistry()
    definition = JobDefinition(name="echo", handler=noop_handler)

    registry.register(definition.name, definition)

    assert registry.get("echo").handler is noop_handler
    assert registry.name == "Job"
