"""Shared pytest fixtures and configuration for all tests."""

import os
from collections.abc import Callable, Generator, Iterable
from pathlib import Path
from typing import Any, cast

import pytest
from _pytest.config import Config

from src.mappings.classification_cache import ClassificationResolver
from src.mappings.journal import MigrationJournal
from src.migrations.revision_replayer import RevisionReplayer
from src.models.revision import WiItem
from src.utils.attachment_correlator import AttachmentCorrelator
from src.utils.link_resolver import LinkResolver, client_neighbor_lookup
from tests.utils.mock_factory import InMemoryJournal, InMemoryWorkItemClient


def pytest_configure(config: Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark a test as a unit test")
    config.addinivalue_line(
        "markers",
        "integration: mark a test as an integration test",
    )
    config.addinivalue_line("markers", "slow: mark a test as slow-running")


def _env_flag(name: str, default: bool = False) -> bool:
    """Read boolean environment flag (true/false)."""
    val = os.environ.get(name, "true" if default else "false").strip().lower()
    return val in {"1", "true", "yes", "on"}


def pytest_collection_modifyitems(config: Config, items: list[pytest.Item]) -> None:
    """Apply default skipping for integration and unmarked tests.

    - Integration tests are skipped by default unless WI_RUN_INTEGRATION is true.
    - Unmarked tests (neither unit nor integration) are skipped by default to keep
      CI stable; mark them appropriately or set WI_RUN_ALL_TESTS=true.
    """
    run_all = _env_flag("WI_RUN_ALL_TESTS", False)
    run_integration = _env_flag("WI_RUN_INTEGRATION", False) or run_all

    skip_integration = pytest.mark.skip(
        reason="Integration tests disabled by default. Set WI_RUN_INTEGRATION=true to enable.",
    )
    skip_unmarked = pytest.mark.skip(
        reason="Unmarked test skipped by default. Mark with unit/integration or set WI_RUN_ALL_TESTS=true.",
    )

    for item in items:
        kws = item.keywords

        if "integration" in kws and not run_integration:
            item.add_marker(skip_integration)
            continue

        # Default: only run explicitly marked tests unless run_all is set
        if not run_all and not any(m in kws for m in ("unit", "integration")):
            item.add_marker(skip_unmarked)


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> Generator[None]:
    """Flag test mode for the whole session and restore the environment afterwards."""
    original_env = os.environ.copy()
    os.environ["WI_TEST_MODE"] = "true"

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def test_env() -> Generator[dict[str, str]]:
    """Fixture to control environment variables during a test.

    Yields:
        dict[str, str]: The live environment; changes are rolled back afterwards.

    """
    original_env = os.environ.copy()
    try:
        yield cast("dict[str, str]", os.environ)
    finally:
        os.environ.clear()
        os.environ.update(original_env)


@pytest.fixture
def client() -> InMemoryWorkItemClient:
    """In-memory destination with default link types and empty classification trees."""
    return InMemoryWorkItemClient(project="Test")


@pytest.fixture
def journal(tmp_path: Path) -> MigrationJournal:
    """File-backed journal in a temporary directory."""
    return MigrationJournal(tmp_path / "itemsJournal.jsonl")


@pytest.fixture
def memory_journal() -> InMemoryJournal:
    return InMemoryJournal()


@pytest.fixture
def resolver(client: InMemoryWorkItemClient) -> ClassificationResolver:
    built = ClassificationResolver.build(client)
    assert built is not None
    return built


@pytest.fixture
def make_replayer(
    client: InMemoryWorkItemClient,
    resolver: ClassificationResolver,
) -> Callable[..., RevisionReplayer]:
    """Build a replayer wired to the in-memory client.

    Call with the journal, the histories used for description correction and any
    keyword overrides (``base_area_path``, ``ignore_failed_links``...).
    """

    def factory(journal: Any, items: Iterable[WiItem] = (), **overrides: Any) -> RevisionReplayer:
        histories = {item.origin_id: item for item in items}
        links = LinkResolver(
            journal,
            client.get_link_types(),
            client_neighbor_lookup(client),
            ignore_failed_links=overrides.pop("ignore_failed_links", False),
        )
        return RevisionReplayer(
            client,
            journal,
            resolver,
            AttachmentCorrelator(journal),
            links,
            histories.__getitem__,
            project=client.project,
            **overrides,
        )

    return factory
