"""Tests for splitting and validating generated answers."""

import logging

from docent.retriever.response_parser import ResponseParser, clean, parse, parse_steps, validate

from conftest import LLM_ANSWER


class TestParse:
    def test_summary_skips_headings(self):
        answer = parse(LLM_ANSWER)
        assert answer.summary.startswith("Students are enrolled")
        assert answer.answer.startswith("Students are enrolled")
        assert answer.raw_text == LLM_ANSWER

    def test_steps_in_order(self):
        answer = parse(LLM_ANSWER)
        assert answer.steps == [
            "Navigate to Start Page > Enroll New Student",
            "Enter the student's demographic information",
            "Click Submit",
        ]

    def test_no_steps_is_none(self):
        assert parse("## Summary\nPlain answer.").steps is None

    def test_only_headings_and_bullets(self):
        raw = "## Heading\n- bullet one\n- bullet two"
        answer = parse(raw)
        assert answer.summary == raw[:100] + "..."
        assert answer.answer == raw

    def test_empty(self):
        answer = parse("")
        assert answer.summary == ""
        assert answer.answer == ""


class TestParseSteps:
    def test_indented_and_empty_steps(self):
        assert parse_steps("  1. First\n2.\n3. Third") == ["First", "Third"]


class TestClean:
    def test_line_endings_and_blank_runs(self):
        assert clean("a\r\nb\rc\n\n\n\nd  ") == "a\nb\nc\n\nd"


class TestValidate:
    def test_good_answer(self):
        assert validate(LLM_ANSWER).valid

    def test_short(self):
        report = validate("## Hi")
        assert not report.valid
        assert any("too short" in issue for issue in report.issues)

    def test_placeholders_and_errors(self):
        raw = "## Summary\nTODO fill this in later. I cannot answer this one properly, sorry."
        report = validate(raw)
        assert "Response contains placeholder text: TODO" in report.issues
        assert "Response indicates generation issues: I cannot" in report.issues

    def test_parser_logs_issues(self, caplog):
        with caplog.at_level(logging.WARNING, logger="docent.retriever.response_parser"):
            report = ResponseParser().validate("short")
        assert not report.valid
        assert "Response validation issues" in caplog.text
