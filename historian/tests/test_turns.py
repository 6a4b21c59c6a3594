import json
import unittest

from historian.models import AssistantEntry, ToolUseBlock, UserEntry
from historian.parsers.entries import parse_text
from historian.parsers.turns import (
    collect_tool_results,
    flatten_content,
    group_turns,
    has_tool_use,
    is_thinking_only,
    is_tool_result_echo,
    merge_assistant_entries,
)
from historian.tests import log_fixtures as fx


def _entries(lines: list[dict]) -> list:
    result = parse_text(fx.to_jsonl(lines))
    assert result.rejected == 0, result.errors
    return result.entries


def _tool_commands(entry: AssistantEntry) -> list[str]:
    return [b.input["command"] for b in entry.message.content if isinstance(b, ToolUseBlock)]


class ToolResultEchoTests(unittest.TestCase):
    def _user(self, content) -> UserEntry:
        return _entries([fx.user("u", content, "2025-06-01T10:00:00Z")])[0]

    def test_blocks_that_are_all_tool_results(self) -> None:
        entry = self._user([fx.tool_result("t1"), fx.tool_result("t2")])
        self.assertTrue(is_tool_result_echo(entry))

    def test_tool_result_next_to_text_is_genuine(self) -> None:
        entry = self._user([fx.tool_result("t1"), {"type": "text", "text": "also, fix the tests"}])
        self.assertFalse(is_tool_result_echo(entry))

    def test_tool_result_block_carrying_text_is_genuine(self) -> None:
        entry = self._user([{"type": "tool_result", "tool_use_id": "t1", "text": "I rejected this"}])
        self.assertFalse(is_tool_result_echo(entry))

    def test_empty_block_list_is_genuine(self) -> None:
        self.assertFalse(is_tool_result_echo(self._user([])))

    def test_json_string_tool_result(self) -> None:
        self.assertTrue(is_tool_result_echo(self._user(json.dumps({"tool_use_id": "t1", "content": "x"}))))
        self.assertTrue(is_tool_result_echo(self._user(json.dumps([{"tool_use_id": "t1"}, {"tool_use_id": "t2"}]))))

    def test_plain_and_non_tool_json_strings_are_genuine(self) -> None:
        for content in (
            "please run the tests",
            json.dumps({"config": {"debug": True}}),
            json.dumps([{"tool_use_id": "t1"}, {"note": "mine"}]),
            json.dumps({"wrapper": {"tool_use_id": "t1"}}),
            "[]",
            "42",
        ):
            with self.subTest(content=content):
                self.assertFalse(is_tool_result_echo(self._user(content)))

    def test_user_pasting_a_tool_result_object_is_treated_as_echo(self) -> None:
        # The heuristic cannot tell a pasted tool_result payload from a real echo.
        pasted = '  {"tool_use_id": "toolu_01abc", "type": "tool_result", "content": "see this?"}  '
        self.assertTrue(is_tool_result_echo(self._user(pasted)))

    def test_assistant_entries_are_never_echoes(self) -> None:
        entry = _entries([fx.assistant("a", [fx.text("hi")], "2025-06-01T10:00:00Z")])[0]
        self.assertFalse(is_tool_result_echo(entry))

    def test_deeply_nested_pasted_text_is_genuine(self) -> None:
        entry = self._user("[" * 100000 + "]" * 100000)

        self.assertFalse(is_tool_result_echo(entry))
        self.assertEqual(collect_tool_results([entry]), {})
        self.assertEqual([t.uuid for t in group_turns([entry])], ["u"])


class GroupTurnsTests(unittest.TestCase):
    def test_consecutive_tools_merge_into_one_turn(self) -> None:
        turns = group_turns(_entries(fx.consecutive_tools()))

        self.assertEqual([t.uuid for t in turns], ["u1", "a1", "u2"])
        merged = turns[1]
        self.assertEqual(_tool_commands(merged), ["ls -la", "pwd", "echo 'hello'"])
        self.assertEqual(merged.message.content[0].id, "toolu_1")

    def test_text_reply_breaks_the_group(self) -> None:
        turns = group_turns(_entries(fx.mixed_content()))

        self.assertEqual([t.uuid for t in turns], ["a1", "a2", "a3"])
        tool_counts = [sum(isinstance(b, ToolUseBlock) for b in t.message.content) for t in turns]
        self.assertEqual(tool_counts, [1, 0, 2])

    def test_thinking_between_tool_entries_is_absorbed(self) -> None:
        turns = group_turns(_entries(fx.tools_with_thinking()))

        self.assertEqual([t.uuid for t in turns], ["u1", "a1"])
        kinds = [type(b).__name__ for b in turns[1].message.content]
        self.assertEqual(
            kinds,
            ["ToolUseBlock", "ThinkingBlock", "ToolUseBlock", "ThinkingBlock", "ToolUseBlock"],
        )

    def test_trailing_thinking_breaks_the_group(self) -> None:
        entries = _entries([
            fx.assistant("a1", [fx.tool("t1", "Bash", {"command": "make"})], "2025-06-01T10:00:00Z"),
            fx.user("r1", [fx.tool_result("t1")], "2025-06-01T10:00:01Z"),
            fx.assistant("k1", [fx.thinking("done?")], "2025-06-01T10:00:02Z"),
            fx.assistant("a2", [fx.text("Build passed.")], "2025-06-01T10:00:03Z"),
        ])

        turns = group_turns(entries)

        self.assertEqual([t.uuid for t in turns], ["a1", "k1", "a2"])
        self.assertTrue(is_thinking_only(turns[1]))

    def test_genuine_user_input_and_summary_break_the_group(self) -> None:
        entries = _entries([
            fx.assistant("a1", [fx.tool("t1", "Bash", {"command": "ls"})], "2025-06-01T10:00:00Z"),
            fx.user("u1", "stop, wrong folder", "2025-06-01T10:00:01Z"),
            fx.assistant("a2", [fx.tool("t2", "Bash", {"command": "cd src"})], "2025-06-01T10:00:02Z"),
            fx.summary("Navigating", "a2"),
            fx.assistant("a3", [fx.tool("t3", "Bash", {"command": "ls"})], "2025-06-01T10:00:03Z"),
        ])

        turns = group_turns(entries)

        self.assertEqual(len(turns), 5)
        self.assertEqual(turns[1].uuid, "u1")

    def test_echo_outside_a_group_passes_through(self) -> None:
        entries = _entries([
            fx.user("r0", [fx.tool_result("t0")], "2025-06-01T10:00:00Z"),
            fx.assistant("a1", [fx.text("hello")], "2025-06-01T10:00:01Z"),
        ])

        self.assertEqual([t.uuid for t in group_turns(entries)], ["r0", "a1"])

    def test_trailing_echoes_are_consumed_with_the_group(self) -> None:
        entries = _entries([
            fx.assistant("a1", [fx.tool("t1", "Bash", {"command": "ls"})], "2025-06-01T10:00:00Z"),
            fx.user("r1", [fx.tool_result("t1")], "2025-06-01T10:00:01Z"),
        ])

        self.assertEqual([t.uuid for t in group_turns(entries)], ["a1"])

    def test_merged_turn_keeps_first_entry_attributes(self) -> None:
        turns = group_turns(_entries(fx.consecutive_tools()))
        merged = turns[1]

        self.assertEqual(merged.uuid, "a1")
        self.assertEqual(merged.parentUuid, "u1")
        self.assertEqual(merged.timestamp, "2025-06-01T10:00:01.000Z")
        self.assertEqual(merged.message.id, "msg_a1")

    def test_merge_preserves_block_order_and_inputs(self) -> None:
        entries = _entries([
            fx.assistant("a1", [fx.text("first"), fx.tool("t1", "Read", {"file_path": "x"})], "2025-06-01T10:00:00Z"),
            fx.assistant("a2", [fx.thinking("mid"), fx.tool("t2", "Read", {"file_path": "y"})], "2025-06-01T10:00:01Z"),
        ])
        original_blocks = [b for e in entries for b in e.message.content]

        merged = merge_assistant_entries(entries)

        self.assertEqual(merged.message.content, original_blocks)
        # The source entries are left untouched.
        self.assertEqual(len(entries[0].message.content), 2)

    def test_merge_rejects_empty_group(self) -> None:
        with self.assertRaises(ValueError):
            merge_assistant_entries([])

    def test_empty_input(self) -> None:
        self.assertEqual(group_turns([]), [])


class ContentHelpersTests(unittest.TestCase):
    def test_has_tool_use_and_thinking_only(self) -> None:
        tool_entry, thought, empty = _entries([
            fx.assistant("a1", [fx.tool("t1", "Bash", {})], "2025-06-01T10:00:00Z"),
            fx.assistant("a2", [fx.thinking("x")], "2025-06-01T10:00:01Z"),
            fx.assistant("a3", [], "2025-06-01T10:00:02Z"),
        ])

        self.assertTrue(has_tool_use(tool_entry))
        self.assertFalse(has_tool_use(thought))
        self.assertTrue(is_thinking_only(thought))
        self.assertFalse(is_thinking_only(empty))

    def test_flatten_assistant_keeps_text_blocks_only(self) -> None:
        entry = _entries([
            fx.assistant(
                "a1",
                [fx.text("one"), fx.thinking("hidden"), fx.tool("t1", "Bash", {}), fx.text("two")],
                "2025-06-01T10:00:00Z",
            )
        ])[0]

        self.assertEqual(flatten_content(entry), "one\ntwo")

    def test_flatten_user_blocks(self) -> None:
        entry = _entries([
            fx.user(
                "u1",
                [{"type": "text", "text": "look at this"}, {"type": "image", "source": "abc"}],
                "2025-06-01T10:00:00Z",
            )
        ])[0]

        first, second = flatten_content(entry).split("\n")
        self.assertEqual(first, "look at this")
        self.assertEqual(json.loads(second), {"type": "image"})

    def test_flatten_user_string(self) -> None:
        entry = _entries([fx.user("u1", "multi\nline", "2025-06-01T10:00:00Z")])[0]
        self.assertEqual(flatten_content(entry), "multi\nline")

    def test_collect_tool_results(self) -> None:
        entries = _entries([
            fx.user("r1", [fx.tool_result("t1", "plain output")], "2025-06-01T10:00:00Z"),
            fx.user("r2", [fx.tool_result("t2", [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}])], "2025-06-01T10:00:01Z"),
            fx.user("r3", [{"type": "tool_result", "tool_use_id": "t3", "tool_result": {"exit": 0}}], "2025-06-01T10:00:02Z"),
            fx.user("r4", json.dumps({"tool_use_id": "t4", "content": "from string"}), "2025-06-01T10:00:03Z"),
            fx.user("u5", "not a result", "2025-06-01T10:00:04Z"),
        ])

        results = collect_tool_results(entries)

        self.assertEqual(results["t1"], "plain output")
        self.assertEqual(results["t2"], "a\nb")
        self.assertEqual(json.loads(results["t3"]), {"exit": 0})
        self.assertEqual(results["t4"], "from string")
        self.assertEqual(len(results), 4)


if __name__ == "__main__":
    unittest.main()
