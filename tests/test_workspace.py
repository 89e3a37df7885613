"""
Tests for the workspace file cache and the context assembler.
"""

import logging

from claw_core.models import SessionType
from claw_core.workspace.assembler import SECTION_DIVIDER, ContextAssembler, truncate_middle
from claw_core.workspace.files import Workspace, note_name

from tests.utils import FIXED_TODAY


def prompt_for(workspace, session_type, assembler=None):
    assembler = assembler or ContextAssembler()
    workspace.cache.reload_many(assembler.visible_files(include_private=session_type is SessionType.MAIN))
    return assembler.compose(workspace.cache, include_private=session_type is SessionType.MAIN)


class TestWorkspaceFileCache:

    def test_invalid_utf8_is_replaced_not_raised(self, workspace, caplog):
        workspace.path("SOUL.md").write_bytes(b"caf\xe9 rules")

        with caplog.at_level(logging.WARNING, logger="claw_core.workspace.files"):
            entry = workspace.cache.reload("SOUL.md")

        assert entry.content == "caf\ufffd rules"
        assert "not valid UTF-8" in caplog.text

    def test_missing_file_is_cached_as_absent(self, workspace):
        entry = workspace.cache.load("SOUL.md")
        assert entry.content is None
        assert not entry.exists
        assert workspace.cache.is_cached("SOUL.md")

    def test_load_uses_cache_until_reload(self, workspace, write_file):
        write_file("AGENTS.md", "v1")
        assert workspace.cache.load("AGENTS.md").content == "v1"

        write_file("AGENTS.md", "v2")
        assert workspace.cache.load("AGENTS.md").content == "v1"
        assert workspace.cache.reload("AGENTS.md").content == "v2"
        assert workspace.cache.cached("AGENTS.md") == "v2"

    def test_invalidate_forces_a_fresh_read(self, workspace, write_file):
        write_file("TOOLS.md", "old")
        workspace.cache.load("TOOLS.md")
        write_file("TOOLS.md", "new")

        workspace.cache.invalidate("TOOLS.md")

        assert workspace.cache.cached("TOOLS.md") is None
        assert workspace.cache.load("TOOLS.md").content == "new"

    def test_note_paths(self, tmp_path):
        ws = Workspace(tmp_path / "ws").ensure()
        assert note_name(FIXED_TODAY) == "memory/2024-02-10.md"
        assert ws.note_path(FIXED_TODAY) == tmp_path / "ws" / "memory" / "2024-02-10.md"
        assert ws.notes_dir.is_dir()


class TestContextAssembler:

    def test_group_session_never_sees_private_files(self, workspace, write_file):
        write_file("MEMORY.md", "secret long-term fact")
        write_file("USER.md", "user lives in Lisbon")
        write_file("SOUL.md", "Be kind.")

        prompt = prompt_for(workspace, SessionType.GROUP)

        assert prompt == "## SOUL.md\n\nBe kind."
        assert "secret" not in prompt
        assert "Lisbon" not in prompt

    def test_ephemeral_session_is_treated_like_group(self, workspace, write_file):
        write_file("MEMORY.md", "secret")
        assert prompt_for(workspace, SessionType.EPHEMERAL) == ""

    def test_single_file_main_session(self, workspace, write_file):
        write_file("AGENTS.md", "Follow the runbook.\n")
        assert prompt_for(workspace, SessionType.MAIN) == "## AGENTS.md\n\nFollow the runbook."

    def test_canonical_order_and_divider(self, workspace, write_file):
        for name in ("USER.md", "MEMORY.md", "HEARTBEAT.md", "IDENTITY.md", "TOOLS.md", "AGENTS.md", "SOUL.md"):
            write_file(name, f"content of {name}")

        sections = prompt_for(workspace, SessionType.MAIN).split(SECTION_DIVIDER)

        assert [s.splitlines()[0] for s in sections] == [
            "## SOUL.md", "## AGENTS.md", "## TOOLS.md", "## IDENTITY.md",
            "## HEARTBEAT.md", "## MEMORY.md", "## USER.md",
        ]

    def test_empty_files_are_skipped(self, workspace, write_file):
        write_file("SOUL.md", "   \n")
        write_file("TOOLS.md", "Use the shell sparingly.")
        assert prompt_for(workspace, SessionType.MAIN) == "## TOOLS.md\n\nUse the shell sparingly."

    def test_inject_files_restricts_the_set(self, workspace, write_file):
        write_file("SOUL.md", "soul")
        write_file("AGENTS.md", "agents")
        assembler = ContextAssembler(inject_files=["AGENTS.md"])

        assert assembler.visible_files(include_private=True) == ["AGENTS.md"]
        assert prompt_for(workspace, SessionType.MAIN, assembler) == "## AGENTS.md\n\nagents"

    def test_oversized_file_is_truncated_in_the_middle(self, workspace, write_file):
        write_file("SOUL.md", "H" * 500 + "T" * 500)
        prompt = prompt_for(workspace, SessionType.MAIN, ContextAssembler(max_file_chars=100))

        assert "[...truncated, read SOUL.md for full content...]" in prompt
        body = prompt.split("\n\n", 1)[1]
        assert body.startswith("H" * 70)
        assert body.endswith("T" * 20)

    def test_truncate_middle_leaves_short_text_alone(self):
        assert truncate_middle("short", 100, "SOUL.md") == "short"
