"""Import of exported work item histories into the destination.

Drives the ``RevisionReplayer`` over all loaded histories. With a single worker
every revision of every work item is replayed in one global chronological
plan, so link targets that were created earlier in history are already
journaled. With several workers each work item is replayed by its own worker,
still strictly in revision order.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path

from src.clients.work_item_client import WorkItemClient
from src.display import ReplayProgress
from src.migrations.base_migration import BaseMigration
from src.migrations.migration_context import MigrationContext
from src.migrations.revision_replayer import RevisionReplayer
from src.models import (
    AbortMigrationError,
    ComponentResult,
    ItemResult,
    MigrationError,
    ReplayState,
    RevisionOutcome,
)
from src.models.revision import WiItem, WiRevision
from src.models.work_item import WorkItem

RESULTS_FILE = "import_results.json"


def build_execution_plan(items: list[WiItem]) -> list[tuple[WiItem, WiRevision]]:
    """Order the revisions of all work items chronologically.

    Ties are broken by origin ID and revision index. A revision is never planned
    before an earlier revision of the same work item, even if the export has
    out-of-order timestamps.
    """
    planned: list[tuple[datetime, str, int, WiItem, WiRevision]] = []
    for item in items:
        latest: datetime | None = None
        for rev in item.revisions:
            latest = rev.time if latest is None or rev.time > latest else latest
            planned.append((latest, item.origin_id, rev.index, item, rev))

    planned.sort(key=lambda entry: entry[:3])
    return [(item, rev) for _, _, _, item, rev in planned]


class WorkItemImportMigration(BaseMigration):
    """Replay all loaded work item histories."""

    def __init__(
        self,
        client: WorkItemClient,
        context: MigrationContext,
        replayer: RevisionReplayer,
        *,
        parallel_workers: int = 1,
        show_progress: bool = True,
        data_dir: Path | None = None,
    ) -> None:
        super().__init__(client, data_dir)
        self.context = context
        self.replayer = replayer
        self.parallel_workers = max(1, parallel_workers)
        self.show_progress = show_progress
        self._abort = threading.Event()
        self._results_lock = threading.Lock()

    # ----- work item handles -----

    def _open_work_item(self, item: WiItem, rev: WiRevision) -> WorkItem:
        """Create the work item for the first revision or fetch it for later ones.

        Raises:
            MigrationError: If a later revision has no imported work item to apply to

        """
        wi_id = self.context.journal.resolve_destination_id(item.origin_id)
        if wi_id is None:
            if rev.index != 0:
                msg = f"'{item.origin_id}' has no imported work item to apply {rev} to"
                raise MigrationError(msg)
            self.logger.debug("Creating %s for '%s'", item.type, item.origin_id)
            return self.client.create_work_item(item.type)
        return self.client.get_work_item(wi_id)

    def _replay_revision(self, item: WiItem, rev: WiRevision, item_result: ItemResult) -> RevisionOutcome:
        if self.context.journal.is_revision_processed(item.origin_id, rev.index):
            outcome = RevisionOutcome.SKIPPED
        else:
            try:
                wi = self._open_work_item(item, rev)
            except AbortMigrationError:
                raise
            except Exception as e:
                self.logger.error("Cannot open work item for %s: %s", rev, e)
                item_result.error = str(e)
                outcome = RevisionOutcome.FAILED
            else:
                outcome = self.replayer.import_revision(rev, wi)
                if wi.id is not None:
                    item_result.wi_id = wi.id

        item_result.record(rev.index, outcome)
        if outcome == RevisionOutcome.FAILED and item_result.error is None:
            item_result.error = f"{rev} could not be imported"
        return outcome

    def _finish_item(self, item_result: ItemResult, result: ComponentResult, tracker: ReplayProgress | None) -> None:
        if item_result.state == ReplayState.IN_PROGRESS:
            item_result.state = ReplayState.COMPLETED
        if item_result.wi_id is None:
            item_result.wi_id = self.context.journal.resolve_destination_id(item_result.origin_id)

        with self._results_lock:
            result.add_item(item_result)
            if tracker is not None:
                tracker.item_done(f"{item_result.origin_id} -> {item_result.wi_id} ({item_result.state.value})")

    # ----- sequential mode -----

    def _run_sequential(self, result: ComponentResult, tracker: ReplayProgress | None) -> None:
        items = list(self.context.items.values())
        item_results = {item.origin_id: ItemResult(origin_id=item.origin_id) for item in items}
        remaining = {item.origin_id: len(item.revisions) for item in items}

        try:
            for item, rev in build_execution_plan(items):
                item_result = item_results[item.origin_id]
                remaining[item.origin_id] -= 1

                outcome: RevisionOutcome | None = None
                if item_result.state != ReplayState.FAILED:
                    item_result.state = ReplayState.IN_PROGRESS
                    outcome = self._replay_revision(item, rev, item_result)

                if tracker is not None:
                    tracker.revision_done(outcome.value if outcome else None)
                if remaining[item.origin_id] == 0:
                    self._finish_item(item_result, result, tracker)
        except AbortMigrationError:
            for item_result in item_results.values():
                if item_result.state == ReplayState.IN_PROGRESS:
                    item_result.state = ReplayState.ABORTED_FATAL
                if item_result.origin_id not in result.items:
                    result.add_item(item_result)
            raise

        # Items without revisions never appear in the plan
        for origin_id, item_result in item_results.items():
            if origin_id not in result.items:
                self._finish_item(item_result, result, tracker)

    # ----- parallel mode -----

    def _replay_item(self, item: WiItem, tracker: ReplayProgress | None) -> ItemResult:
        item_result = ItemResult(origin_id=item.origin_id, state=ReplayState.IN_PROGRESS)
        try:
            for rev in item.revisions:
                if self._abort.is_set():
                    item_result.state = ReplayState.ABORTED_FATAL
                    break
                outcome = self._replay_revision(item, rev, item_result)
                if tracker is not None:
                    tracker.revision_done(outcome.value)
                if outcome == RevisionOutcome.FAILED:
                    break
        except AbortMigrationError:
            item_result.state = ReplayState.ABORTED_FATAL
            self._abort.set()
            raise
        return item_result

    def _run_parallel(self, result: ComponentResult, tracker: ReplayProgress | None) -> None:
        self._abort.clear()
        executor = ThreadPoolExecutor(max_workers=self.parallel_workers, thread_name_prefix="wi-import")
        try:
            futures = {executor.submit(self._replay_item, item, tracker): item for item in self.context.items.values()}
            for future in as_completed(futures):
                item = futures[future]
                try:
                    item_result = future.result()
                except AbortMigrationError:
                    result.add_item(ItemResult(origin_id=item.origin_id, state=ReplayState.ABORTED_FATAL))
                    raise
                self._finish_item(item_result, result, tracker)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    # ----- entry point -----

    def run(self) -> ComponentResult:
        """Replay all work items and return the per-item results."""
        result = ComponentResult()
        total = self.context.revision_count
        mode = "chronological plan" if self.parallel_workers == 1 else f"{self.parallel_workers} workers"
        self.logger.notice("Importing %d work items (%d revisions) using %s", len(self.context), total, mode)

        try:
            with ReplayProgress(total, enabled=self.show_progress) as tracker:
                if self.parallel_workers == 1:
                    self._run_sequential(result, tracker)
                else:
                    self._run_parallel(result, tracker)
        except AbortMigrationError as e:
            self.logger.critical("Import aborted: %s", e.message)
            result.success = False
            result.message = f"Import aborted: {e.message}"
            result["aborted"] = True
            self._save_results(result)
            return result

        result.success = result.failed_count == 0
        result.message = (
            f"Imported {result.success_count} of {result.total_count} work items"
            f" ({result.failed_count} failed)"
        )
        result["aborted"] = False
        result["incomplete_revisions"] = sum(i.incomplete for i in result.items.values())
        result["skipped_revisions"] = sum(i.skipped for i in result.items.values())

        if result.success:
            self.logger.success(result.message)
        else:
            self.logger.error(result.message)
        self._save_results(result)
        return result

    def _save_results(self, result: ComponentResult) -> None:
        try:
            self._save_to_json(result, RESULTS_FILE)
        except MigrationError:
            self.logger.warning("Unable to write %s", RESULTS_FILE, exc_info=True)
