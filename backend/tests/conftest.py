"""
PromptSite - Test Configuration and Fixtures
"""
import os
import pytest

# Set testing environment before settings are loaded
os.environ['ENVIRONMENT'] = 'testing'
os.environ['SERVICE_BASE_URL'] = 'http://gateway.test'
os.environ['GENERATION_BACKEND'] = 'http'
os.environ['RECORDING_FAILURE_FATAL'] = 'false'
os.environ['PROJECT_WORKING_DIRECTORY'] = './react-base-temp'
os.environ['ANTHROPIC_API_KEY'] = 'test-api-key'
os.environ['LOG_LEVEL'] = 'WARNING'

from promptsite.modules.orchestrator import DedupGuard, EventBus, ProjectSession
from tests.mocks.fake_services import (
    FakeBuildService,
    FakeFileSelectionService,
    FakeGenerationService,
    FakePackagingService,
    FakeProjectStore,
    FakeWriteService,
    TODO_FILES,
    TODO_STRUCTURE,
    generation_output,
    make_services,
)


@pytest.fixture
def store():
    return FakeProjectStore()


@pytest.fixture
def generation():
    return FakeGenerationService(
        generate_output=generation_output(TODO_FILES, TODO_STRUCTURE)
    )


@pytest.fixture
def file_selection():
    return FakeFileSelectionService()


@pytest.fixture
def writer():
    return FakeWriteService()


@pytest.fixture
def packaging():
    return FakePackagingService()


@pytest.fixture
def builder():
    return FakeBuildService()


@pytest.fixture
def services(store, generation, file_selection, writer, packaging, builder):
    return make_services(
        store=store,
        generation=generation,
        file_selection=file_selection,
        writer=writer,
        packaging=packaging,
        builder=builder
    )


@pytest.fixture
def guard():
    """Fresh guard per test so runs never leak across tests"""
    return DedupGuard()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def make_session(services, guard, event_bus):
    """Factory for sessions sharing one guard, like sessions in one process"""
    def _make(**kwargs):
        kwargs.setdefault("guard", guard)
        kwargs.setdefault("event_bus", event_bus)
        return ProjectSession(services, **kwargs)
    return _make


@pytest.fixture
def session(make_session):
    return make_session()
