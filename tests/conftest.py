"""Shared fixtures for layout engine tests."""

import pytest

from graphlayout.converters.hierarchy_projector import project
from graphlayout.core.coordinator import LayoutCoordinator
from graphlayout.core.layout_cache import LayoutCacheStore
from graphlayout.models.hierarchy import Hierarchy
from tests.fixtures.hierarchies import make_project_hierarchy, make_scenario_hierarchy
from tests.fixtures.layout_workers import CountingWorker, ManualWorker


@pytest.fixture
def scenario_hierarchy() -> Hierarchy:
    return make_scenario_hierarchy()


@pytest.fixture
def project_hierarchy() -> Hierarchy:
    return make_project_hierarchy()


@pytest.fixture
def expanded_snapshot(scenario_hierarchy):
    """Scenario snapshot with root expanded."""
    return project(scenario_hierarchy, {"root"})


@pytest.fixture
def collapsed_snapshot(scenario_hierarchy):
    """Scenario snapshot with root collapsed."""
    return project(scenario_hierarchy, set())


@pytest.fixture
def memory_cache():
    cache = LayoutCacheStore(max_entries=16)
    yield cache
    cache.close()


@pytest.fixture
def counting_worker() -> CountingWorker:
    return CountingWorker()


@pytest.fixture
def manual_worker():
    worker = ManualWorker()
    yield worker
    worker.shutdown()


@pytest.fixture
def coordinator(counting_worker, memory_cache) -> LayoutCoordinator:
    return LayoutCoordinator(counting_worker, memory_cache)
