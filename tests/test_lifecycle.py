"""
Tests for session start and post-compaction context injection.
"""

from claw_core.context.tracker import ContextWindowTracker
from claw_core.models import ConversationTurn, SessionType
from claw_core.session.lifecycle import NOTES_TRUNCATION_MARKER, SessionLifecycleHooks, clip_tail
from claw_core.workspace.assembler import SECTION_DIVIDER

TODAY_NOTE = "memory/2024-02-10.md"
YESTERDAY_NOTE = "memory/2024-02-09.md"


def test_clip_tail_keeps_the_newest_text():
    assert clip_tail("short", 10) == "short"
    assert clip_tail("0123456789abcdef", 6) == f"{NOTES_TRUNCATION_MARKER}\nabcdef"


class TestSessionStart:

    def test_main_session_gets_files_memory_and_notes(self, make_session, write_file, fixed_clock, small_policy):
        write_file("AGENTS.md", "Follow the runbook.")
        write_file("MEMORY.md", "User's cat is named Miso.")
        write_file(TODAY_NOTE, "Shipped release 1.4.")
        write_file(YESTERDAY_NOTE, "Planned release 1.4.")
        write_file("memory/2024-02-01.md", "Too old to inject.")
        session = make_session()
        tracker = ContextWindowTracker(small_policy)

        tokens = SessionLifecycleHooks(clock=fixed_clock).on_session_start(session, tracker)

        assert session.system_prompt == (
            "## AGENTS.md\n\nFollow the runbook." + SECTION_DIVIDER + "## MEMORY.md\n\nUser's cat is named Miso."
        )
        assert session.injected_context.count("Miso") == 1
        assert session.notes_context == (
            f"## {YESTERDAY_NOTE}\n\nPlanned release 1.4."
            + SECTION_DIVIDER
            + f"## {TODAY_NOTE}\n\nShipped release 1.4."
        )
        assert "Too old" not in session.injected_context
        assert tokens == session.injected_tokens > 0
        assert tracker.current_usage() == tokens

    def test_group_session_gets_notes_but_not_private_files(self, make_session, write_file, fixed_clock):
        write_file("SOUL.md", "Be concise.")
        write_file("MEMORY.md", "private")
        write_file("USER.md", "private too")
        write_file(TODAY_NOTE, "Standup moved to 10am.")
        session = make_session(SessionType.GROUP)

        SessionLifecycleHooks(clock=fixed_clock).on_session_start(session)

        assert session.system_prompt == "## SOUL.md\n\nBe concise."
        assert "private" not in session.injected_context
        assert "Standup moved" in session.notes_context

    def test_undecodable_file_does_not_block_start(self, make_session, workspace, fixed_clock):
        workspace.path("SOUL.md").write_bytes(b"caf\xe9 rules")
        session = make_session(SessionType.GROUP)

        SessionLifecycleHooks(clock=fixed_clock).on_session_start(session)

        assert "caf\ufffd rules" in session.system_prompt

    def test_empty_workspace_injects_nothing(self, make_session, fixed_clock, small_policy):
        session = make_session()
        tracker = ContextWindowTracker(small_policy)
        assert SessionLifecycleHooks(clock=fixed_clock).on_session_start(session, tracker) == 0
        assert session.injected_context == ""
        assert tracker.current_usage() == 0


class TestNotesBudget:

    def test_today_over_budget_keeps_tail_and_drops_yesterday(self, make_session, write_file, fixed_clock):
        write_file(TODAY_NOTE, "old entry. " * 10 + "newest entry")
        write_file(YESTERDAY_NOTE, "yesterday")
        session = make_session()

        SessionLifecycleHooks(notes_max_chars=30, clock=fixed_clock).on_session_start(session)

        assert session.notes_context.startswith(f"## {TODAY_NOTE}\n\n{NOTES_TRUNCATION_MARKER}\n")
        assert session.notes_context.endswith("newest entry")
        assert "yesterday" not in session.notes_context

    def test_yesterday_gets_the_remainder(self, make_session, write_file, fixed_clock):
        write_file(TODAY_NOTE, "t" * 40)
        write_file(YESTERDAY_NOTE, "y" * 100)
        session = make_session()

        SessionLifecycleHooks(notes_max_chars=60, clock=fixed_clock).on_session_start(session)

        yesterday_section, today_section = session.notes_context.split(SECTION_DIVIDER)
        assert yesterday_section == f"## {YESTERDAY_NOTE}\n\n{NOTES_TRUNCATION_MARKER}\n" + "y" * 20
        assert today_section == f"## {TODAY_NOTE}\n\n" + "t" * 40


class TestPostCompaction:

    def test_reinjects_files_changed_on_disk(self, make_session, write_file, fixed_clock, small_policy):
        write_file("MEMORY.md", "Old fact.")
        session = make_session()
        tracker = ContextWindowTracker(small_policy)
        hooks = SessionLifecycleHooks(clock=fixed_clock)
        hooks.on_session_start(session, tracker)

        write_file("MEMORY.md", "Old fact.\nNew fact from the flush.")
        write_file(TODAY_NOTE, "Flushed notes.")
        kept = ConversationTurn.user("latest question", token_count=50)
        session.turns = [kept]

        tokens = hooks.on_post_compaction(session, tracker)

        assert "New fact from the flush." in session.system_prompt
        assert "Flushed notes." in session.notes_context
        assert tracker.current_usage() == tokens + 50

    def test_removed_files_disappear(self, make_session, write_file, workspace, fixed_clock):
        write_file("TOOLS.md", "Use grep.")
        session = make_session()
        hooks = SessionLifecycleHooks(clock=fixed_clock)
        hooks.on_session_start(session)

        workspace.path("TOOLS.md").unlink()
        hooks.on_post_compaction(session)

        assert session.system_prompt == ""
