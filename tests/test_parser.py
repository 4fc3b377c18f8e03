"""
Tests for the regex note parser.
"""

from datetime import date, datetime, timezone

import pytest

from conftest import PROJECT_NOTE, SCENARIO_NOTE


# ============== Tests for helper functions ==============

class TestParserHelpers:
    """Tests for tag, id and content helpers."""

    def test_extract_tags_normalizes_and_sorts(self):
        """Test tags are lowercased, de-duplicated and sorted."""
        from notecore.parser import extract_tags

        assert extract_tags("#Work and #work plus #alpha/beta") == ["alpha/beta", "work"]

    def test_extract_tags_requires_word_start(self):
        """Test a '#' inside a word or an id is not a tag."""
        from notecore.parser import extract_tags

        assert extract_tags("issue#12 and C# code") == []

    def test_extract_task_ids_keeps_first_occurrence_order(self):
        """Test task ids come back unique in reading order."""
        from notecore.parser import extract_task_ids

        assert extract_task_ids("[T-2] then [T-1] and [T-2] again") == ["T-2", "T-1"]

    def test_extract_task_ids_ignores_malformed_brackets(self):
        """Test unmatched or non-task brackets are skipped."""
        from notecore.parser import extract_task_ids

        assert extract_task_ids("[T-1 missing bracket and [X-5]") == []

    def test_clean_content_strips_ids_and_tags(self):
        """Test ids and tags are removed and whitespace collapsed."""
        from notecore.parser import clean_content

        assert clean_content("  Draft   summary #work [T-1234] ") == "Draft summary"


# ============== Tests for RegexNoteParser ==============

class TestRegexNoteParserTasks:
    """Tests for task extraction."""

    def test_scenario_tasks(self, parser, make_note):
        """Test the two tasks of the reference daily note."""
        parsed = parser.parse(make_note(SCENARIO_NOTE))

        assert [t.id for t in parsed.tasks] == ["T-1234", "2024-05-02.md#3"]
        explicit, fallback = parsed.tasks
        assert explicit.title == "Draft summary"
        assert explicit.status.value == "Open"
        assert explicit.tags == ["work"]
        assert explicit.line == 2
        assert fallback.title == "Finish report"
        assert fallback.status.value == "Done"

    def test_checkbox_marks(self, parser, make_note):
        """Test every checkbox mark maps to its status."""
        from notecore.models import TaskStatus

        content = "## Tasks\n- [ ] a\n- [x] b\n- [X] c\n- [~] d\n- [/] e\n- [!] f\n- [?] g\n"
        parsed = parser.parse(make_note(content))

        assert [t.status for t in parsed.tasks] == [
            TaskStatus.OPEN,
            TaskStatus.DONE,
            TaskStatus.DONE,
            TaskStatus.IN_PROGRESS,
            TaskStatus.IN_PROGRESS,
            TaskStatus.BLOCKED,
            TaskStatus.OPEN,
        ]

    def test_star_bullets(self, parser, make_note):
        """Test '*' bullets are accepted for tasks."""
        parsed = parser.parse(make_note("## Tasks\n* [ ] Star task\n"))

        assert [t.title for t in parsed.tasks] == ["Star task"]

    def test_extra_ids_become_dependencies(self, parser, make_note):
        """Test ids after the first are recorded as depends_on."""
        parsed = parser.parse(make_note("## Tasks\n- [ ] Ship [T-2] [T-1] [T-3]\n"))

        task = parsed.tasks[0]
        assert task.id == "T-2"
        assert task.depends_on == ["T-1", "T-3"]

    def test_empty_title_is_skipped(self, parser, make_note):
        """Test a task with only tags and ids produces nothing."""
        parsed = parser.parse(make_note("## Tasks\n- [ ] #work [T-1]\n- [ ]\n"))

        assert parsed.tasks == []

    def test_fallback_id_is_stable(self, parser, make_note):
        """Test the fallback id depends only on note id and line."""
        note = make_note("## Tasks\n\n- [ ] Untracked\n")

        first = parser.parse(note)
        second = parser.parse(note)

        assert first.tasks[0].id == "2024-05-02.md#3"
        assert first == second

    def test_tasks_outside_section_ignored(self, parser, make_note):
        """Test checkboxes outside the Tasks section are not tasks."""
        content = "- [ ] Loose\n## Notes\n- [ ] Elsewhere\n## tasks\n- [ ] Counted\n"
        parsed = parser.parse(make_note(content))

        assert [t.title for t in parsed.tasks] == ["Counted"]

    def test_timestamps_anchor_to_note_date(self, parser, make_note):
        """Test created/updated use the note date and closed_at is set for done tasks."""
        parsed = parser.parse(make_note(SCENARIO_NOTE))
        midnight = datetime(2024, 5, 2, tzinfo=timezone.utc)

        open_task, done_task = parsed.tasks
        assert open_task.created_at == midnight
        assert open_task.updated_at == midnight
        assert open_task.closed_at is None
        assert done_task.closed_at == midnight

    def test_undated_note_anchors_to_modified_at(self, parser, make_note):
        """Test notes without a date fall back to their modification time."""
        parsed = parser.parse(make_note("## Tasks\n- [ ] Task\n", note_date=None))

        assert parsed.tasks[0].created_at == datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def test_continuation_lines_join_task(self, parser, make_note):
        """Test indented continuation lines extend the task body."""
        content = "## Tasks\n- [ ] Plan release\n  with #ops [T-7]\n- [ ] Next\n"
        parsed = parser.parse(make_note(content))

        first = parsed.tasks[0]
        assert first.id == "T-7"
        assert first.title == "Plan release with"
        assert first.tags == ["ops"]
        assert parsed.tasks[1].line == 4


class TestRegexNoteParserLog:
    """Tests for log entry and mention extraction."""

    def test_scenario_log_entry(self, parser, make_note):
        """Test the log entry of the reference daily note."""
        parsed = parser.parse(make_note(SCENARIO_NOTE))

        assert len(parsed.log_entries) == 1
        entry = parsed.log_entries[0]
        assert entry.id == "2024-05-02.md:5"
        assert entry.line == 5
        assert entry.timestamp == "2024-05-01"
        assert entry.occurred_at == datetime(2024, 5, 1, tzinfo=timezone.utc)
        assert entry.content == "Completed milestone"
        assert entry.tags == ["wins"]
        assert entry.task_ids == ["T-1234"]

    def test_scenario_mention(self, parser, make_note):
        """Test the log entry produces one mention pointing at its line."""
        parsed = parser.parse(make_note(SCENARIO_NOTE))

        assert len(parsed.mentions) == 1
        mention = parsed.mentions[0]
        assert mention.task_id == "T-1234"
        assert mention.line == 5
        assert mention.log_entry_id == "2024-05-02.md:5"
        assert mention.tags == ["wins"]

    def test_clock_timestamp_resolves_against_note_date(self, parser, make_note):
        """Test HH:MM timestamps combine with the note date."""
        parsed = parser.parse(make_note("## Log\n- 09:30 Standup\n- 2:15pm Review\n"))

        standup, review = parsed.log_entries
        assert standup.timestamp == "09:30"
        assert standup.occurred_at == datetime(2024, 5, 2, 9, 30, tzinfo=timezone.utc)
        assert standup.content == "Standup"
        assert review.timestamp == "2:15pm"
        assert review.occurred_at == datetime(2024, 5, 2, 14, 15, tzinfo=timezone.utc)

    def test_clock_timestamp_without_note_date(self, parser, make_note):
        """Test a clock timestamp is kept but unresolved on undated notes."""
        parsed = parser.parse(make_note("## Log\n- 09:30 Standup\n", note_date=None))

        entry = parsed.log_entries[0]
        assert entry.timestamp == "09:30"
        assert entry.occurred_at is None

    def test_datetime_timestamp_with_dash_separator(self, parser, make_note):
        """Test 'YYYY-MM-DD HH:MM - text' strips the timestamp and separator."""
        parsed = parser.parse(make_note("## Log\n- 2024-05-07 14:00 - Beta cut #alpha\n"))

        entry = parsed.log_entries[0]
        assert entry.timestamp == "2024-05-07 14:00"
        assert entry.occurred_at == datetime(2024, 5, 7, 14, 0, tzinfo=timezone.utc)
        assert entry.content == "Beta cut"

    def test_invalid_timestamp_stays_in_text(self, parser, make_note):
        """Test an impossible time is treated as plain text."""
        parsed = parser.parse(make_note("## Log\n- 25:99 Odd entry\n"))

        entry = parsed.log_entries[0]
        assert entry.timestamp is None
        assert entry.content == "25:99 Odd entry"

    def test_timestamp_only_bullet_is_skipped(self, parser, make_note):
        """Test a bullet with nothing but a timestamp produces no entry."""
        parsed = parser.parse(make_note("## Log\n- 10:00\n- \n"))

        assert parsed.log_entries == []

    def test_mentions_outside_sections(self, parser, make_note):
        """Test references in free text become mentions without a log entry."""
        parsed = parser.parse(make_note("Intro about [T-1] and [T-2] #misc\n"))

        assert [(m.task_id, m.log_entry_id, m.line) for m in parsed.mentions] == [
            ("T-1", None, 1),
            ("T-2", None, 1),
        ]
        assert parsed.mentions[0].tags == ["misc"]

    def test_excerpt_is_truncated(self, make_note):
        """Test long mention excerpts are cut to the configured length."""
        from notecore.parser import RegexNoteParser

        parser = RegexNoteParser(excerpt_length=10)
        parsed = parser.parse(make_note("A rather long line mentioning [T-1]\n"))

        assert parsed.mentions[0].excerpt == "A rather l…"

    def test_excerpt_is_cleaned(self, parser, make_note):
        """Test excerpts drop timestamps, tags and task id brackets."""
        content = "Ping [T-1] about #ops\n## Log\n- 09:30 Paired on [T-1] #pairing\n"
        parsed = parser.parse(make_note(content))

        assert [m.excerpt for m in parsed.mentions] == ["Ping about", "Paired on"]


class TestRegexNoteParserProjectNote:
    """Tests against a note mixing frontmatter, free text and both sections."""

    @pytest.fixture
    def parsed(self, parser, make_note):
        return parser.parse(make_note(PROJECT_NOTE, note_id="projects/alpha.md", note_date=date(2024, 5, 6)))

    def test_tasks(self, parsed):
        """Test task ids, statuses and dependencies."""
        assert [(t.id, t.status.value) for t in parsed.tasks] == [
            ("T-2000", "Open"),
            ("projects/alpha.md#12", "InProgress"),
            ("T-3000", "Blocked"),
        ]
        assert parsed.tasks[0].tags == ["alpha", "work"]
        assert parsed.tasks[0].depends_on == ["T-1234"]

    def test_log_entry_with_continuation(self, parsed):
        """Test the continuation line is folded into the log entry."""
        entry = parsed.log_entries[0]
        assert entry.line == 16
        assert entry.content == "Kickoff with the team agenda shared beforehand"
        assert entry.occurred_at == datetime(2024, 5, 6, 9, 30, tzinfo=timezone.utc)

    def test_mentions(self, parsed):
        """Test free-text and log mentions are both collected."""
        assert [(m.task_id, m.line, m.log_entry_id) for m in parsed.mentions] == [
            ("T-1234", 8, None),
            ("T-2000", 16, "projects/alpha.md:16"),
        ]

    def test_parser_satisfies_protocol(self):
        """Test RegexNoteParser is usable wherever a NoteParser is expected."""
        from notecore.parser import NoteParser, RegexNoteParser

        def run(p: NoteParser):
            return p

        assert run(RegexNoteParser()) is not None
