"""
Unit tests for the document stores, the live editor and the prompters.
"""

import pytest
from datetime import datetime
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from notedash.core.errors import HostFailureError
from notedash.core.store import (
    AutoPrompter, FileDocumentStore, InMemoryDocumentStore, is_special_folder,
)

NOW = datetime(2024, 5, 1, 10, 0)


@pytest.fixture
def store():
    return InMemoryDocumentStore(
        {
            "20240501.md": "* Stored task\n* Other\n",
            "Work/Plan.md": "# Plan\n* Draft\n",
        },
        {"Work/Plan.md": datetime(2024, 4, 20, 12, 0)},
        clock=lambda: NOW,
    )


class TestSpecialFolders:

    def test_at_folders_are_special(self):
        assert is_special_folder("@Archive/old.md")
        assert is_special_folder("Work/@Templates/x.md")

    def test_normal_folders(self):
        assert not is_special_folder("Work/Plan.md")
        assert not is_special_folder("20240501.md")


class TestInMemoryStore:
    """Tests for reading and writing through the in-memory store."""

    @pytest.mark.asyncio
    async def test_get_calendar_note_by_period(self, store):
        note = await store.get_calendar_note("2024-05-01")
        assert note.filename == "20240501.md"
        assert note.find_line("Stored task") is not None

    @pytest.mark.asyncio
    async def test_missing_note(self, store):
        assert await store.get_note("Nope.md") is None
        assert await store.find_line("Nope.md", "anything") is None

    @pytest.mark.asyncio
    async def test_live_buffer_preferred(self, store):
        """The open editor's unsaved text wins unless the stored copy is asked for."""
        store.editor.open("20240501.md", "* Live task\n", NOW)
        live = await store.get_note("20240501.md")
        stored = await store.get_note("20240501.md", prefer_live=False)
        assert live.find_line("Live task") is not None
        assert stored.find_line("Stored task") is not None

    @pytest.mark.asyncio
    async def test_find_line_reads_stored_copy(self, store):
        store.editor.open("20240501.md", "* Live task\n", NOW)
        assert await store.find_line("20240501.md", "Live task") is None
        assert (await store.find_line("20240501.md", "Stored task")).line_index == 0

    @pytest.mark.asyncio
    async def test_replace_line_updates_editor(self, store):
        store.editor.open("20240501.md", "* Stored task\n* Other\n", NOW)
        await store.replace_line("20240501.md", 0, "* [x] Stored task")
        assert store.text_of("20240501.md") == "* [x] Stored task\n* Other\n"
        assert store.editor.text == "* [x] Stored task\n* Other\n"

    @pytest.mark.asyncio
    async def test_replace_line_keeps_unsaved_editor_text(self, store):
        """Lines typed in the editor but not yet saved survive an edit."""
        store.editor.open("20240501.md", "* Stored task\n* Other\n* Typed just now\n", NOW)
        await store.replace_line("20240501.md", 0, "* [x] Stored task")
        assert store.editor.text == "* [x] Stored task\n* Other\n* Typed just now\n"
        assert store.text_of("20240501.md") == store.editor.text

    @pytest.mark.asyncio
    async def test_insert_and_remove_use_live_buffer(self, store):
        store.editor.open("20240501.md", "* Typed just now\n", NOW)
        await store.insert_lines("20240501.md", 1, ["* Added"])
        assert store.editor.text == "* Typed just now\n* Added\n"
        await store.remove_lines("20240501.md", [0])
        assert store.editor.text == "* Added\n"
        assert store.text_of("20240501.md") == "* Added\n"

    @pytest.mark.asyncio
    async def test_insert_creates_note(self, store):
        await store.insert_lines("20240502.md", 0, ["* New"])
        assert store.text_of("20240502.md") == "* New\n"

    @pytest.mark.asyncio
    async def test_remove_lines(self, store):
        await store.remove_lines("20240501.md", [0])
        assert store.text_of("20240501.md") == "* Other\n"

    @pytest.mark.asyncio
    async def test_failed_write_raises_and_keeps_text(self, store):
        store.fail_writes = True
        with pytest.raises(HostFailureError):
            await store.replace_line("20240501.md", 0, "* changed")
        assert store.text_of("20240501.md") == "* Stored task\n* Other\n"

    @pytest.mark.asyncio
    async def test_update_of_missing_note_is_host_failure(self, store):
        with pytest.raises(HostFailureError):
            await store.replace_line("Gone.md", 0, "* x")

    @pytest.mark.asyncio
    async def test_notes_changed_since(self, store):
        changed = await store.notes_changed_since(datetime(2024, 5, 1, 0, 0))
        assert [n.filename for n in changed] == ["20240501.md"]


class TestFileStore:
    """Tests for the markdown-file store."""

    @pytest.mark.asyncio
    async def test_save_places_notes_by_kind(self, tmp_path):
        store = FileDocumentStore(tmp_path)
        await store.save_note("20240501.md", ["* Daily"])
        await store.save_note("Work/Plan.md", ["# Plan", "* Draft"])

        assert (tmp_path / "Calendar" / "20240501.md").read_text() == "* Daily\n"
        assert (tmp_path / "Notes" / "Work" / "Plan.md").exists()

    @pytest.mark.asyncio
    async def test_list_notes(self, tmp_path):
        (tmp_path / "Calendar").mkdir()
        (tmp_path / "Calendar" / "2024-W18.md").write_text("* Weekly\n")
        (tmp_path / "Notes" / "Home").mkdir(parents=True)
        (tmp_path / "Notes" / "Home" / "Garden.md").write_text("# Garden\n")
        (tmp_path / "Notes" / "Home" / "photo.png").write_bytes(b"\x89PNG")

        store = FileDocumentStore(tmp_path)
        names = sorted(n.filename for n in await store.list_notes())
        assert names == ["2024-W18.md", "Home/Garden.md"]

    @pytest.mark.asyncio
    async def test_reread_after_external_edit(self, tmp_path):
        store = FileDocumentStore(tmp_path)
        await store.save_note("20240501.md", ["* One"])
        await store.invalidate("20240501.md")
        (tmp_path / "Calendar" / "20240501.md").write_text("* Two\n")
        note = await store.get_note("20240501.md")
        assert note.find_line("Two") is not None


class TestAutoPrompter:

    @pytest.mark.asyncio
    async def test_scripted_answers(self):
        prompter = AutoPrompter(confirm_answer=True, answers=["Buy milk", "Work/Plan.md"])
        assert await prompter.confirm("Sure?")
        assert await prompter.ask("Task?") == "Buy milk"
        assert await prompter.choose("Where?", ["Home.md", "Work/Plan.md"]) == "Work/Plan.md"
        assert prompter.asked == ["Sure?", "Task?", "Where?"]

    @pytest.mark.asyncio
    async def test_defaults_when_out_of_answers(self):
        prompter = AutoPrompter()
        assert not await prompter.confirm("Sure?")
        assert await prompter.ask("Task?") is None
        assert await prompter.choose("Where?", ["A.md", "B.md"]) == "A.md"
