"""ResponseParser のテスト。

3種類の出力形式、部分的な検証失敗（DEGRADED）、
解析不能（FAILED）およびクォータ・認証エラーの分類を検証する。
"""

from __future__ import annotations

import pytest

from kenmon.engine._parser import (
    DialectResult,
    EmbeddedJsonDialect,
    FencedJsonDialect,
    MarkdownHeaderDialect,
    build_finding,
    failed_agent_report,
    is_service_error,
    parse_agent_output,
)
from kenmon.models.agent_report import FailureKind, ParseStatus
from kenmon.models.agent_task import TaskStatus
from kenmon.models.finding import UNKNOWN_FILE, UNKNOWN_LINE
from kenmon.models.severity import Severity
from tests.unit.engine.conftest import ISSUES_JSON, make_task

FENCED_OUTPUT = """\
Here is my review.

```json
{
  "issues": [
    {"severity": "HIGH", "file": "src/Foo.java", "line": 12,
     "message": "Method name should be camelCase", "rule_id": "NAM-002"}
  ],
  "summary": "One naming issue"
}
```
"""

EMBEDDED_OUTPUT = (
    "I reviewed the diff. Result: "
    '{"findings": [{"level": "critical", "filePath": "Db.java", "lineNumber": "4", '
    '"description": "Hardcoded password", "ruleId": "SEC-001"}]} Thanks!'
)

MARKDOWN_OUTPUT = """\
Summary: Two problems found

### [BLOCK] Hardcoded password
**File:** src/Db.java
**Line:** 4
**Message:** Password literal committed to source

### [warning] Long method
- File: src/Service.java
- Rule: QUA-010
"""


# =============================================================================
# ダイアレクト
# =============================================================================


class TestFencedJsonDialect:
    def test_extracts_items_and_summary(self) -> None:
        result = FencedJsonDialect().extract(FENCED_OUTPUT)
        assert result is not None
        assert len(result.items) == 1
        assert result.summary == "One naming issue"

    def test_skips_invalid_fence(self) -> None:
        text = "```\nnot json\n```\n```json\n{\"issues\": []}\n```"
        assert FencedJsonDialect().extract(text) == DialectResult(items=())

    def test_object_without_issue_array(self) -> None:
        assert FencedJsonDialect().extract('```json\n{"ok": true}\n```') is None


class TestEmbeddedJsonDialect:
    def test_extracts_object_from_prose(self) -> None:
        result = EmbeddedJsonDialect().extract(EMBEDDED_OUTPUT)
        assert result is not None
        assert result.items[0]["ruleId"] == "SEC-001"

    def test_skips_leading_non_issue_object(self) -> None:
        text = 'meta {"model": "x"} then {"issues": [{"severity": "INFO", "message": "m"}]}'
        result = EmbeddedJsonDialect().extract(text)
        assert result is not None
        assert len(result.items) == 1

    def test_no_json(self) -> None:
        assert EmbeddedJsonDialect().extract("LGTM, no braces here") is None


class TestMarkdownHeaderDialect:
    def test_headers_and_fields(self) -> None:
        result = MarkdownHeaderDialect().extract(MARKDOWN_OUTPUT)
        assert result is not None
        assert result.summary == "Two problems found"
        first, second = result.items
        assert first == {
            "severity": "BLOCK",
            "title": "Hardcoded password",
            "file": "src/Db.java",
            "line": "4",
            "message": "Password literal committed to source",
        }
        assert second["rule"] == "QUA-010"
        assert "message" not in second

    def test_backticks_stripped_from_values(self) -> None:
        text = (
            "### [WARN] Unused import\n"
            "- **File:** `Foo.java`\n"
            "- **Line:** `3`\n"
            "- **Rule:** `QUA-001`\n"
        )
        result = MarkdownHeaderDialect().extract(text)
        assert result is not None
        assert result.items[0]["file"] == "Foo.java"
        assert result.items[0]["line"] == "3"
        assert result.items[0]["rule"] == "QUA-001"

    def test_no_headers(self) -> None:
        assert MarkdownHeaderDialect().extract("## Overview\nAll good.") is None


# =============================================================================
# build_finding
# =============================================================================


class TestBuildFinding:
    def test_aliases_resolved(self) -> None:
        finding = build_finding(
            {
                "level": "critical",
                "filePath": "Db.java",
                "lineNumber": 4,
                "description": "Hardcoded password",
                "ruleId": "SEC-001",
            },
            "security",
        )
        assert finding.severity == Severity.BLOCK
        assert finding.file == "Db.java"
        assert finding.line == 4
        assert finding.rule_id == "SEC-001"
        assert finding.source_agent == "security"

    def test_title_used_as_message(self) -> None:
        finding = build_finding({"severity": "INFO", "title": "Typo"}, "naming")
        assert finding.message == "Typo"
        assert finding.file == UNKNOWN_FILE
        assert finding.line == UNKNOWN_LINE

    @pytest.mark.parametrize("line", [-3, True, "n/a"])
    def test_unusable_line_becomes_unknown(self, line: object) -> None:
        finding = build_finding({"severity": "INFO", "message": "m", "line": line}, "a")
        assert finding.line == UNKNOWN_LINE

    def test_out_of_range_confidence_ignored(self) -> None:
        finding = build_finding(
            {"severity": "INFO", "message": "m", "confidence": 7}, "a"
        )
        assert finding.confidence is None

    def test_numeric_rule_id_stringified(self) -> None:
        assert build_finding({"severity": "INFO", "message": "m", "id": 7}, "a").rule_id == "7"

    def test_missing_severity_rejected(self) -> None:
        with pytest.raises(ValueError):
            build_finding({"message": "m"}, "a")

    def test_non_object_rejected(self) -> None:
        with pytest.raises(ValueError, match="must be an object"):
            build_finding("BLOCK: bad", "a")


# =============================================================================
# parse_agent_output
# =============================================================================


class TestParseAgentOutputOk:
    def test_plain_json(self) -> None:
        report = parse_agent_output(make_task(raw_output=ISSUES_JSON))
        assert report.parse_status == ParseStatus.OK
        assert report.dialect == "embedded_json"
        assert report.summary == "1 issue"
        (finding,) = report.findings
        assert finding.severity == Severity.BLOCK
        assert finding.location == "src/Db.java:4"

    def test_fenced_preferred(self) -> None:
        report = parse_agent_output(make_task("naming", raw_output=FENCED_OUTPUT))
        assert report.dialect == "fenced_json"
        assert report.findings[0].severity == Severity.WARN

    def test_markdown(self) -> None:
        report = parse_agent_output(make_task(raw_output=MARKDOWN_OUTPUT))
        assert report.dialect == "markdown_headers"
        assert [f.severity for f in report.findings] == [Severity.BLOCK, Severity.WARN]
        assert report.findings[1].message == "Long method"

    def test_empty_issue_list(self) -> None:
        report = parse_agent_output(make_task(raw_output='{"issues": []}'))
        assert report.parse_status == ParseStatus.OK
        assert report.findings == ()


class TestParseAgentOutputDegraded:
    def test_invalid_items_dropped(self) -> None:
        raw = (
            '{"issues": [{"severity": "BLOCK", "message": "kept"}, '
            '{"severity": "URGENT", "message": "bad severity"}, '
            '{"severity": "WARN"}, "text item"]}'
        )
        report = parse_agent_output(make_task(raw_output=raw))
        assert report.parse_status == ParseStatus.DEGRADED
        assert report.failure_kind == FailureKind.PARSE
        assert report.dropped_items == 3
        assert [f.message for f in report.findings] == ["kept"]


class TestParseAgentOutputFailed:
    @pytest.mark.parametrize("raw", [None, "", "   \n"])
    def test_no_output(self, raw: str | None) -> None:
        report = parse_agent_output(make_task(raw_output=raw))
        assert report.parse_status == ParseStatus.FAILED
        assert report.failure_kind == FailureKind.PARSE
        assert report.error_message == "Agent produced no output"

    def test_unrecognized_output_keeps_raw(self) -> None:
        raw = "The code looks fine to me."
        report = parse_agent_output(make_task(raw_output=raw))
        assert report.parse_status == ParseStatus.FAILED
        assert report.error_message == "Output matched no known response format"
        assert report.raw_output == raw
        assert report.findings == ()

    def test_quota_message_in_output(self) -> None:
        raw = "Thinking...\nError: You have exceeded your monthly quota.\n"
        report = parse_agent_output(make_task(raw_output=raw))
        assert report.failure_kind == FailureKind.QUOTA_OR_AUTH
        assert report.error_message == (
            "Service error reported by agent: Error: You have exceeded your monthly quota."
        )

    def test_failed_task_delegates(self) -> None:
        task = make_task(status=TaskStatus.TIMED_OUT, error_message="deadline")
        report = parse_agent_output(task)
        assert report.failure_kind == FailureKind.TIMEOUT

    def test_raising_dialect_is_skipped(self) -> None:
        class _Broken:
            name = "broken"

            def extract(self, text: str) -> DialectResult | None:
                raise RuntimeError("bug")

        report = parse_agent_output(
            make_task(raw_output=ISSUES_JSON),
            dialects=(_Broken(), EmbeddedJsonDialect()),
        )
        assert report.dialect == "embedded_json"


# =============================================================================
# failed_agent_report / is_service_error
# =============================================================================


class TestFailedAgentReport:
    def test_timeout(self) -> None:
        report = failed_agent_report(make_task(status=TaskStatus.TIMED_OUT))
        assert report.failure_kind == FailureKind.TIMEOUT
        assert report.error_message == "Agent ended with status timed_out"

    def test_invocation(self) -> None:
        report = failed_agent_report(
            make_task(status=TaskStatus.FAILED, error_message="exit 2")
        )
        assert report.failure_kind == FailureKind.INVOCATION
        assert report.task_failed

    def test_quota_from_raw_output(self) -> None:
        task = make_task(
            status=TaskStatus.FAILED,
            error_message="copilot exited with code 1",
            raw_output="429 Too Many Requests",
        )
        assert failed_agent_report(task).failure_kind == FailureKind.QUOTA_OR_AUTH


class TestIsServiceError:
    @pytest.mark.parametrize(
        "text",
        [
            "Rate limit exceeded",
            "HTTP 401 Unauthorized",
            "Error: not logged in. Run `copilot login`",
            "invalid API key",
            "Your credit balance is too low",
        ],
    )
    def test_detected(self, text: str) -> None:
        assert is_service_error(text)

    @pytest.mark.parametrize("text", [None, "", "Method too long", "line 4011"])
    def test_not_detected(self, text: str | None) -> None:
        assert not is_service_error(text)
