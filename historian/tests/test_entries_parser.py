import json
import tempfile
import unittest
from pathlib import Path

from historian.models import AssistantEntry, SummaryEntry, TextBlock, ThinkingBlock, ToolUseBlock, UserEntry
from historian.parsers.entries import parse_file, parse_line, parse_text
from historian.tests.log_fixtures import assistant, summary, text, thinking, to_jsonl, tool, tool_result, user


class ParseLineTests(unittest.TestCase):
    def test_user_entry_with_string_content(self) -> None:
        result = parse_line(json.dumps(user("u1", "hello", "2025-06-01T10:00:00Z")))

        self.assertTrue(result.ok)
        self.assertIsInstance(result.entry, UserEntry)
        self.assertEqual(result.entry.message.content, "hello")
        self.assertIsNone(result.entry.parentUuid)

    def test_user_entry_with_tool_result_blocks(self) -> None:
        result = parse_line(json.dumps(user("r1", [tool_result("toolu_1", "done")], "2025-06-01T10:00:00Z")))

        self.assertTrue(result.ok)
        block = result.entry.message.content[0]
        self.assertEqual(block.tool_use_id, "toolu_1")
        self.assertEqual(block.content, "done")

    def test_assistant_blocks_are_typed(self) -> None:
        line = assistant(
            "a1",
            [thinking("hmm"), text("Running it."), tool("toolu_1", "Bash", {"command": "ls"})],
            "2025-06-01T10:00:00Z",
        )

        result = parse_line(json.dumps(line))

        self.assertIsInstance(result.entry, AssistantEntry)
        kinds = [type(block) for block in result.entry.message.content]
        self.assertEqual(kinds, [ThinkingBlock, TextBlock, ToolUseBlock])
        self.assertEqual(result.entry.message.model, "claude-sonnet-4-20250514")

    def test_summary_entry(self) -> None:
        result = parse_line(json.dumps(summary("Refactor auth", "a9")))

        self.assertIsInstance(result.entry, SummaryEntry)
        self.assertEqual(result.entry.leafUuid, "a9")

    def test_unknown_fields_are_ignored(self) -> None:
        line = user("u1", "hi", "2025-06-01T10:00:00Z", gitBranch="main", someFutureField={"x": 1})

        self.assertTrue(parse_line(json.dumps(line)).ok)

    def test_optional_envelope_fields_may_be_absent(self) -> None:
        user_line = user("u1", "hi", "2025-06-01T10:00:00Z")
        for key in ("userType", "cwd", "version"):
            del user_line[key]
        assistant_line = assistant("a1", [text("hello")], "2025-06-01T10:00:01Z")
        del assistant_line["requestId"]
        for key in ("id", "type", "usage"):
            del assistant_line["message"][key]

        self.assertTrue(parse_line(json.dumps(user_line)).ok)
        self.assertTrue(parse_line(json.dumps(assistant_line)).ok)

    def test_assistant_without_model_is_rejected(self) -> None:
        line = assistant("a1", [text("hello")], "2025-06-01T10:00:01Z")
        del line["message"]["model"]

        self.assertIn("model", parse_line(json.dumps(line)).error)

    def test_blank_line_is_skipped_not_rejected(self) -> None:
        result = parse_line("   ")

        self.assertTrue(result.skipped)
        self.assertFalse(result.ok)
        self.assertIsNone(result.error)

    def test_invalid_json_reports_reason(self) -> None:
        result = parse_line('{"type": "user", ')

        self.assertFalse(result.ok)
        self.assertTrue(result.error.startswith("invalid JSON"))

    def test_missing_required_field_reports_location(self) -> None:
        line = user("u1", "hi", "2025-06-01T10:00:00Z")
        del line["sessionId"]

        result = parse_line(json.dumps(line))

        self.assertFalse(result.ok)
        self.assertIn("validation failed", result.error)
        self.assertIn("sessionId", result.error)

    def test_unknown_entry_type_is_rejected(self) -> None:
        result = parse_line(json.dumps({"type": "system", "uuid": "s1"}))

        self.assertFalse(result.ok)
        self.assertIn("validation failed", result.error)

    def test_unknown_assistant_block_type_is_rejected(self) -> None:
        line = assistant("a1", [{"type": "image", "source": {}}], "2025-06-01T10:00:00Z")

        self.assertFalse(parse_line(json.dumps(line)).ok)

    def test_non_object_json_is_rejected(self) -> None:
        self.assertFalse(parse_line("[1, 2, 3]").ok)
        self.assertFalse(parse_line('"just a string"').ok)

    def test_deeply_nested_json_is_rejected_not_raised(self) -> None:
        result = parse_line("[" * 100000 + "]" * 100000)

        self.assertFalse(result.ok)
        self.assertTrue(result.error.startswith("invalid JSON"))


class ParseTextTests(unittest.TestCase):
    def test_counts_rejections_and_keeps_line_order(self) -> None:
        lines = [
            user("u1", "first", "2025-06-01T10:00:00Z"),
            "not json at all",
            assistant("a1", [text("second")], "2025-06-01T10:00:01Z"),
            {"type": "user", "uuid": "broken"},
            "",
            summary("third", "a1"),
        ]

        result = parse_text(to_jsonl(lines))

        self.assertEqual(result.rejected, 2)
        self.assertEqual(len(result.errors), 2)
        self.assertEqual([type(e).__name__ for e in result.entries], ["UserEntry", "AssistantEntry", "SummaryEntry"])

    def test_n_lines_with_k_invalid_yield_n_minus_k_entries(self) -> None:
        good = [user(f"u{i}", f"msg {i}", "2025-06-01T10:00:00Z") for i in range(7)]
        bad = [{"type": "assistant", "uuid": f"x{i}"} for i in range(3)]

        result = parse_text(to_jsonl(good + bad))

        self.assertEqual(len(result.entries), 7)
        self.assertEqual(result.rejected, 3)

    def test_unicode_line_separators_inside_strings_do_not_split_entries(self) -> None:
        # JSON.stringify leaves U+2028, U+2029 and NEL unescaped.
        lines = [
            json.dumps(user("u1", "before\u2028after\u2029end", "2025-06-01T10:00:00Z"), ensure_ascii=False),
            json.dumps(user("u2", "next\x85line", "2025-06-01T10:00:01Z"), ensure_ascii=False),
            json.dumps(assistant("a1", [text("paragraph\u2029break")], "2025-06-01T10:00:02Z"), ensure_ascii=False),
        ]

        result = parse_text("\n".join(lines) + "\n")

        self.assertEqual(result.rejected, 0)
        self.assertEqual([e.uuid for e in result.entries], ["u1", "u2", "a1"])
        self.assertEqual(result.entries[0].message.content, "before\u2028after\u2029end")
        self.assertEqual(result.entries[1].message.content, "next\x85line")

    def test_crlf_line_endings(self) -> None:
        lines = [json.dumps(user(f"u{i}", "hi", "2025-06-01T10:00:00Z")) for i in range(2)]

        result = parse_text("\r\n".join(lines) + "\r\n")

        self.assertEqual(len(result.entries), 2)
        self.assertEqual(result.rejected, 0)

    def test_one_pathological_line_does_not_lose_the_rest(self) -> None:
        lines = [user("u1", "ok", "2025-06-01T10:00:00Z"), "[" * 100000 + "]" * 100000]

        result = parse_text(to_jsonl(lines))

        self.assertEqual(len(result.entries), 1)
        self.assertEqual(result.rejected, 1)

    def test_parse_file_reads_from_disk(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = Path(tmpdir.name) / "session.jsonl"
        path.write_text(to_jsonl([user("u1", "hi", "2025-06-01T10:00:00Z"), "{oops"]), encoding="utf-8")

        result = parse_file(path)

        self.assertEqual(len(result.entries), 1)
        self.assertEqual(result.rejected, 1)

    def test_parse_file_missing_raises_oserror(self) -> None:
        with self.assertRaises(OSError):
            parse_file("/nonexistent/dir/session.jsonl")


if __name__ == "__main__":
    unittest.main()
