import unittest

from codex_monitor.parsers.titles import (
    extract_request_section,
    extract_user_title,
    is_skippable_user_message,
    make_title,
    normalize_whitespace,
    originator_display_name,
    project_name,
    strip_file_paths,
    strip_instructions_block,
    truncate,
)


class TitleExtractionTests(unittest.TestCase):
    def test_skippable_prefixes(self) -> None:
        self.assertTrue(is_skippable_user_message("<environment_context>\n<cwd>/x</cwd>"))
        self.assertTrue(is_skippable_user_message("# AGENTS.md instructions for /repo"))
        self.assertFalse(is_skippable_user_message("Please read AGENTS.md"))

    def test_request_section_stops_at_next_header(self) -> None:
        text = "preamble\n## My request for Codex:\nDo the thing\n## Other section\nignored"
        self.assertEqual(extract_request_section(text), "Do the thing")
        self.assertEqual(extract_user_title(text), "Do the thing")

    def test_request_section_header_tolerates_indentation_and_keeps_multiple_lines(self) -> None:
        text = "context\n   ## My request for Codex:   \nLine one\n\n  Line two\n"
        self.assertEqual(extract_request_section(text), "Line one\n  Line two")

    def test_empty_request_section_falls_back_to_whole_message(self) -> None:
        text = "intro\n## My request for Codex:\n## Next"
        self.assertIsNone(extract_request_section(text))
        self.assertEqual(extract_user_title(text), text)

    def test_extract_user_title_rejects_skippable_and_empty(self) -> None:
        self.assertIsNone(extract_user_title("<environment_context>stuff"))
        self.assertIsNone(extract_user_title(""))

    def test_strip_file_paths(self) -> None:
        text = "Fix /Users/alice/project/File.swift:12:3 and /Users/bob/a.py:7 plus /tmp/keep.txt"
        stripped = strip_file_paths(text)
        self.assertNotIn("/Users/alice/project/File.swift:12:3", stripped)
        self.assertNotIn("/Users/bob/a.py:7", stripped)
        self.assertIn("/tmp/keep.txt", stripped)

    def test_normalize_whitespace_flattens_newlines(self) -> None:
        self.assertEqual(normalize_whitespace("  a\nb\r\nc  "), "a b  c")

    def test_truncate(self) -> None:
        self.assertEqual(truncate("short", 200), "short")
        self.assertEqual(truncate("x" * 200, 200), "x" * 200)
        result = truncate("y" * 201, 200)
        self.assertEqual(len(result), 200)
        self.assertTrue(result.endswith("..."))
        self.assertEqual(truncate("abcdef", 3), "abcdef")

    def test_make_title_uses_sentinel(self) -> None:
        self.assertEqual(make_title(None), "(no user message)")
        self.assertEqual(make_title("line one\nline two"), "line one line two")

    def test_strip_instructions_block(self) -> None:
        text = "<INSTRUCTIONS>a</INSTRUCTIONS> keep <INSTRUCTIONS>b\nc</INSTRUCTIONS> this "
        self.assertEqual(strip_instructions_block(text), "keep  this")
        self.assertEqual(strip_instructions_block("<INSTRUCTIONS>unterminated"), "<INSTRUCTIONS>unterminated")

    def test_project_name(self) -> None:
        self.assertEqual(project_name("/Users/alice/code/widget"), "widget")
        self.assertEqual(project_name("/Users/alice/code/widget/"), "widget")
        self.assertEqual(project_name("   "), "Unknown")

    def test_originator_display_name(self) -> None:
        self.assertEqual(originator_display_name("codex_vscode"), "VS.CODE")
        self.assertEqual(originator_display_name("Codex_CLI"), "CLI")
        self.assertEqual(originator_display_name("codex_tui"), "CLI")
        self.assertEqual(originator_display_name("/opt/tools/runner"), "runner")
        self.assertEqual(originator_display_name("com.example.desktop"), "desktop")
        self.assertEqual(originator_display_name("agent:worker"), "worker")
        self.assertEqual(originator_display_name(""), "Unknown")
        self.assertEqual(len(originator_display_name("z" * 40)), 24)


if __name__ == "__main__":
    unittest.main()
