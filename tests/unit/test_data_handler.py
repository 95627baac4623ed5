"""Tests for the data_handler utility module."""

import json
import shutil
import tempfile
import unittest
from pathlib import Path

import pytest

from src.models import ComponentResult, MigrationError
from src.utils import data_handler

HISTORY = {
    "origin_id": "WI-1",
    "type": "Bug",
    "revisions": [
        {
            "parent_origin_id": "WI-1",
            "index": 0,
            "time": "2023-01-02T09:00:00Z",
            "author": "Alice Example",
            "fields": [
                {"reference_name": "System.Title", "value": "Crash on save"},
                {"reference_name": "Microsoft.VSTS.Common.Priority", "value": 2},
            ],
            "attachments": [
                {"change": "Added", "att_origin_id": "a1", "file_path": "WI-1/log.txt"},
            ],
        },
        {
            "parent_origin_id": "WI-1",
            "index": 1,
            "time": "2023-01-03T09:00:00Z",
            "author": "Bob Example",
            "links": [
                {
                    "change": "Added",
                    "wi_type": "System.LinkTypes.Hierarchy-Reverse",
                    "source_origin_id": "WI-1",
                    "target_origin_id": "WI-0",
                },
            ],
        },
    ],
}


@pytest.mark.unit
class TestDataHandler(unittest.TestCase):
    """Test cases for the data_handler module."""

    def setUp(self) -> None:
        """Set up test fixtures."""
        self.temp_dir = Path(tempfile.mkdtemp())

    def tearDown(self) -> None:
        """Clean up after tests."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write(self, name: str, content: object) -> Path:
        path = self.temp_dir / name
        path.write_text(content if isinstance(content, str) else json.dumps(content), encoding="utf-8")
        return path

    def test_save_pydantic_model(self) -> None:
        """Models are dumped in JSON mode."""
        result = ComponentResult(success=True, message="done", details={"total": 3})

        path = data_handler.save(result, "result.json", directory=self.temp_dir)

        saved = json.loads(path.read_text(encoding="utf-8"))
        assert saved["success"] is True
        assert saved["details"] == {"total": 3}

    def test_save_strips_directories_from_filename(self) -> None:
        path = data_handler.save({"a": 1}, Path("nested/dir/out.json"), directory=self.temp_dir)

        assert path == self.temp_dir / "out.json"

    def test_save_encodes_paths(self) -> None:
        path = data_handler.save({"file": Path("/tmp/x")}, "paths.json", directory=self.temp_dir)

        assert json.loads(path.read_text(encoding="utf-8")) == {"file": "/tmp/x"}

    def test_load_item(self) -> None:
        item = data_handler.load_item(self.write("WI-1.json", HISTORY))

        assert item.origin_id == "WI-1"
        assert [rev.index for rev in item.revisions] == [0, 1]
        assert item.revisions[0].fields[1].value == 2
        assert item.revisions[0].added_attachments[0].file_path == "WI-1/log.txt"
        assert item.revisions[1].links[0].split_type()[0] == "System.LinkTypes.Hierarchy"

    def test_load_item_rejects_invalid_history(self) -> None:
        broken = {**HISTORY, "revisions": list(reversed(HISTORY["revisions"]))}

        with pytest.raises(MigrationError, match="Invalid work item history"):
            data_handler.load_item(self.write("broken.json", broken))

    def test_load_items_skips_invalid_files(self) -> None:
        self.write("a.json", HISTORY)
        self.write("b.json", "{not json")
        self.write("c.json", {**HISTORY, "origin_id": "WI-2", "revisions": []})
        self.write("notes.txt", "ignored")

        items = data_handler.load_items(self.temp_dir)

        assert [item.origin_id for item in items] == ["WI-1", "WI-2"]

    def test_load_items_strict(self) -> None:
        self.write("b.json", "{not json")

        with pytest.raises(MigrationError):
            data_handler.load_items(self.temp_dir, strict=True)

    def test_load_items_ignores_duplicates(self) -> None:
        self.write("a.json", HISTORY)
        self.write("b.json", HISTORY)

        assert len(data_handler.load_items(self.temp_dir)) == 1

    def test_load_items_missing_directory(self) -> None:
        with pytest.raises(FileNotFoundError):
            data_handler.load_items(self.temp_dir / "missing")
