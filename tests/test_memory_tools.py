"""
Tests for the memory manager and the memory_search / memory_get tools.
"""

import json

import pytest

from claw_core.config.loader import RetrievalConfig
from claw_core.errors import MemoryPathError
from claw_core.memory.manager import MemoryManager, is_memory_path, normalize_memory_path
from claw_core.tools.base import ToolRegistry
from claw_core.tools.memory_tools import register_memory_tools

from tests.utils import FIXED_TODAY

NOTES = {
    "MEMORY.md": "# Long-term\n\nUser prefers short answers.\nUser's timezone is Lisbon.\n",
    "memory/2024-01-01.md": "Wrote down the deploy process for the API.\n",
    "memory/2024-02-09.md": "Updated the deploy process: run migrations first.\n",
}


@pytest.fixture
def memory(workspace, write_file, fixed_clock):
    for name, content in NOTES.items():
        write_file(name, content)
    manager = MemoryManager(workspace, clock=fixed_clock)
    manager.reindex()
    return manager


@pytest.fixture
def registry(memory):
    registry = register_memory_tools(ToolRegistry(default_timeout=5), memory)
    yield registry
    registry.shutdown()


class TestMemoryPaths:

    @pytest.mark.parametrize("path,expected", [
        ("MEMORY.md", "MEMORY.md"),
        ("memory/2024-02-09.md", "memory/2024-02-09.md"),
        ("memory\\2024-02-09.md", "memory/2024-02-09.md"),
    ])
    def test_valid_paths(self, path, expected):
        assert normalize_memory_path(path) == expected

    @pytest.mark.parametrize("path", [
        "", "USER.md", "/etc/passwd", "../MEMORY.md", "memory/../USER.md",
        "memory/sub/note.md", "memory/notes.txt", "transcripts/session_x.json",
    ])
    def test_invalid_paths(self, path):
        with pytest.raises(MemoryPathError, match="is not a valid memory file"):
            normalize_memory_path(path)
        assert not is_memory_path(path)


class TestMemoryManager:

    def test_reindex_covers_memory_and_notes_only(self, memory, write_file):
        write_file("USER.md", "deploy secrets")
        memory.reindex()
        assert memory.memory_files() == ["MEMORY.md", "memory/2024-01-01.md", "memory/2024-02-09.md"]
        assert memory.get_stats()["sources"] == 3

    def test_reindex_survives_an_undecodable_note(self, memory, workspace):
        workspace.path("memory/2024-02-08.md").write_bytes(b"caf\xe9 deploy notes")

        memory.reindex()

        assert [h.source_path for h in memory.search("notes")] == ["memory/2024-02-08.md"]

    def test_search_ranks_recent_note_first(self, memory):
        hits = memory.search("deploy process", k=5)

        assert [h.source_path for h in hits] == ["memory/2024-02-09.md", "memory/2024-01-01.md"]
        assert hits[0].snippet == "Updated the deploy process: run migrations first."
        assert (hits[0].start_line, hits[0].end_line) == (1, 1)
        assert hits[0].score > hits[1].score > 0

    def test_snippets_are_capped(self, workspace, write_file, fixed_clock):
        write_file("MEMORY.md", "deploy " * 300)
        manager = MemoryManager(workspace, RetrievalConfig(snippet_max_chars=50), clock=fixed_clock)
        manager.reindex()
        assert len(manager.search("deploy")[0].snippet) == 50

    def test_get_whole_file_and_ranges(self, memory):
        assert memory.get("MEMORY.md") == NOTES["MEMORY.md"]
        assert memory.get("MEMORY.md", from_line=3, lines=1) == "User prefers short answers.\n"
        assert memory.get("MEMORY.md", from_line=3) == "User prefers short answers.\nUser's timezone is Lisbon.\n"
        assert memory.get("MEMORY.md", from_line=40) == ""

    def test_get_missing_file_is_empty(self, memory):
        assert memory.get("memory/2023-12-31.md") == ""

    def test_get_rejects_bad_ranges_and_paths(self, memory):
        with pytest.raises(ValueError):
            memory.get("MEMORY.md", from_line=0)
        with pytest.raises(ValueError):
            memory.get("MEMORY.md", lines=0)
        with pytest.raises(MemoryPathError):
            memory.get("USER.md")

    def test_append_note_reindexes_only_that_note(self, memory):
        untouched = memory.index.generation.term_freqs["MEMORY.md#0000"]

        rel = memory.append_note("Rollback plan: revert the migration.")
        memory.append_note("Rollback needs a DBA on call.")

        assert rel == f"memory/{FIXED_TODAY.isoformat()}.md"
        assert memory.read_note() == "Rollback plan: revert the migration.\n\nRollback needs a DBA on call.\n"
        assert memory.index.generation.term_freqs["MEMORY.md#0000"] is untouched
        assert memory.search("rollback")[0].source_path == rel

    def test_index_file_drops_deleted_source(self, memory, workspace):
        workspace.path("memory/2024-01-01.md").unlink()

        assert memory.index_file("memory/2024-01-01.md") == 0
        assert [h.source_path for h in memory.search("deploy")] == ["memory/2024-02-09.md"]

    def test_hybrid_scorer_ignored_unless_enabled(self, workspace):
        class Scorer:
            def score(self, query, generation):
                return {}

        manager = MemoryManager(workspace, secondary_scorer=Scorer())
        assert manager.index.secondary_scorer is None
        enabled = MemoryManager(workspace, RetrievalConfig(hybrid_enabled=True), secondary_scorer=Scorer())
        assert enabled.index.secondary_scorer is not None

    def test_diversity_config_builds_a_reranker(self, workspace):
        manager = MemoryManager(workspace, RetrievalConfig(diversity_enabled=True, mmr_lambda=0.5))
        assert manager.index.reranker.mmr_lambda == 0.5


class TestMemoryTools:

    def test_schemas_use_agent_parameter_names(self, registry):
        assert registry.list_tools() == ["memory_search", "memory_get"]
        search, get = registry.get_schemas()
        assert set(search["function"]["parameters"]["properties"]) == {"query", "maxResults", "minScore"}
        assert search["function"]["parameters"]["required"] == ["query"]
        assert set(get["function"]["parameters"]["properties"]) == {"path", "from", "lines"}
        anthropic = registry.get_schemas("anthropic")
        assert anthropic[0]["input_schema"]["required"] == ["query"]

    def test_search_returns_json_hits(self, registry):
        result = registry.execute("memory_search", {"query": "deploy process", "maxResults": 1})

        assert result.success
        payload = json.loads(result.output)
        assert payload["query"] == "deploy process"
        assert [h["source_path"] for h in payload["results"]] == ["memory/2024-02-09.md"]
        assert result.metadata["result_count"] == 1

    def test_search_min_score_can_drop_everything(self, registry):
        result = registry.execute("memory_search", {"query": "deploy", "minScore": 1000})
        assert result.success
        assert result.output == "No matching memories found."

    def test_search_has_no_score_cutoff_by_default(self, registry):
        search = registry.get_schemas()[0]
        min_score = search["function"]["parameters"]["properties"]["minScore"]
        assert min_score["default"] == 0.0
        assert "Default: 0 (no cutoff)" in min_score["description"]

        payload = json.loads(registry.execute("memory_search", {"query": "deploy"}).output)
        # The 40-day-old note is decayed but still returned
        assert "memory/2024-01-01.md" in [h["source_path"] for h in payload["results"]]

    def test_search_validation_errors(self, registry):
        missing = registry.execute("memory_search", {})
        assert not missing.success
        assert missing.error.startswith("Invalid arguments:")
        assert "query" in missing.error

        bad = registry.execute("memory_search", {"query": "x", "maxResults": 0})
        assert not bad.success
        assert "maxResults" in bad.error

    def test_get_with_from_alias(self, registry):
        result = registry.execute("memory_get", {"path": "MEMORY.md", "from": 3, "lines": 1})
        assert result.success
        assert result.output == "User prefers short answers.\n"

    def test_get_rejects_non_memory_paths(self, registry):
        result = registry.execute("memory_get", {"path": "../secrets.md"})
        assert not result.success
        assert "not a valid memory file" in result.error

    def test_unknown_tool(self, registry):
        result = registry.execute("memory_delete", {"path": "MEMORY.md"})
        assert not result.success
        assert result.error == "Unknown tool: memory_delete"
