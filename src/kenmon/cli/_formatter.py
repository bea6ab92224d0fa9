"""EngineResult の出力フォーマッタ（markdown / json）。"""

from __future__ import annotations

from itertools import groupby
from typing import Final, assert_never

from kenmon.engine import EngineResult, RunStatus
from kenmon.models.agent_report import AgentReport, ParseStatus
from kenmon.models.config import OutputFormat
from kenmon.models.decision import Decision
from kenmon.models.finding import Finding
from kenmon.models.report import Report
from kenmon.models.severity import SEVERITY_ORDER

BYPASS_HINT: Final[str] = "Fix these issues or use 'git commit --no-verify' to bypass."

_DECISION_HEADLINES: Final[dict[Decision, str]] = {
    Decision.ALLOW: "No issues found. Commit allowed.",
    Decision.ALLOW_WITH_WARNINGS: "Non-blocking issues found. Commit allowed.",
    Decision.BLOCK: "Blocking issues found. Commit blocked.",
    Decision.SERVICE_UNAVAILABLE: (
        "Review service unavailable. Commit allowed without review."
    ),
}

_JSON_EXCLUDE: Final[dict[str, object]] = {
    "report": {"agent_reports": {"__all__": {"raw_output"}}}
}
"""JSON 出力から除外するフィールド（生出力は成果物ファイルで確認する）。"""


def format_result(result: EngineResult, output_format: OutputFormat) -> str:
    """実行結果を指定形式の文字列に変換する。"""
    if output_format == OutputFormat.JSON:
        return result.model_dump_json(indent=2, exclude=_JSON_EXCLUDE)
    if output_format == OutputFormat.MARKDOWN:
        return format_markdown(result)
    assert_never(output_format)


def format_markdown(result: EngineResult) -> str:
    """EngineResult を Markdown 文字列に変換する。

    Args:
        result: 変換対象の実行結果。

    Returns:
        Markdown 形式の文字列。
    """
    if result.status != RunStatus.REVIEWED or result.verdict is None or result.report is None:
        return f"# Pre-commit Review: {result.status.upper()}\n\n{result.message}\n"

    decision = result.verdict.decision
    report = result.report
    sections: list[str] = [
        f"# Pre-commit Review: {decision.value}",
        _DECISION_HEADLINES[decision],
        _format_summary(report, decision, result),
    ]

    findings_section = _format_findings(report.findings)
    if findings_section:
        sections.append(findings_section)

    sections.append(_format_agents(report.agent_reports))

    service_section = _format_service_errors(report.service_errors)
    if service_section:
        sections.append(service_section)

    if decision == Decision.BLOCK:
        sections.append(f"> {BYPASS_HINT}")

    return "\n\n".join(sections) + "\n"


# ── Summary ──────────────────────────────────────────────


def _format_summary(report: Report, decision: Decision, result: EngineResult) -> str:
    rows = [
        f"| Decision | {decision.value} |",
        f"| Findings | {report.total_count} |",
        f"| BLOCK | {report.block_count} |",
        f"| WARN | {report.warn_count} |",
        f"| INFO | {report.info_count} |",
        f"| Files | {len(result.reviewed_files)} |",
    ]
    if result.diff_truncated:
        rows.append("| Diff | truncated |")
    if report.degraded:
        rows.append("| Degraded | yes |")

    table = "\n".join(rows)
    return (
        f"## Summary\n\n{report.summary}\n\n"
        f"| Metric | Value |\n|--------|-------|\n{table}"
    )


# ── Findings ─────────────────────────────────────────────


def _format_findings(findings: tuple[Finding, ...]) -> str:
    """指摘を重大度降順でグループ化して Markdown に変換する。

    Returns:
        Markdown 文字列。findings が空の場合は空文字列。
    """
    if not findings:
        return ""

    sorted_findings = sorted(
        findings,
        key=lambda f: SEVERITY_ORDER[f.severity.value],
        reverse=True,
    )

    parts: list[str] = ["## Findings"]
    for severity, group in groupby(sorted_findings, key=lambda f: f.severity):
        group_list = list(group)
        parts.append(f"\n### {severity.value} ({len(group_list)})\n")
        parts.extend(_format_single_finding(f) for f in group_list)
    return "\n".join(parts)


def _format_single_finding(finding: Finding) -> str:
    rule = f" {finding.rule_id}" if finding.rule_id else ""
    agents = ", ".join(finding.provenance)
    return (
        f"- [{finding.severity.value}]{rule} `{finding.location}` "
        f"{finding.message} ({agents})"
    )


# ── Agents ───────────────────────────────────────────────


def _format_agents(reports: tuple[AgentReport, ...]) -> str:
    rows = "\n".join(_format_agent_row(r) for r in reports)
    return (
        "## Agents\n\n"
        "| Agent | Task | Parse | Findings |\n"
        "|-------|------|-------|----------|\n"
        f"{rows}"
    )


def _format_agent_row(report: AgentReport) -> str:
    parse = report.parse_status.value
    if report.parse_status != ParseStatus.OK and report.failure_kind is not None:
        parse = f"{parse} ({report.failure_kind.value})"
    count = "-" if report.parse_status == ParseStatus.FAILED else str(len(report.findings))
    return f"| {report.agent_name} | {report.task_status.value} | {parse} | {count} |"


# ── Service Errors ───────────────────────────────────────


def _format_service_errors(reports: tuple[AgentReport, ...]) -> str:
    """クォータ超過・認証エラーを指摘とは別に表示する。

    Returns:
        Markdown 文字列。該当がない場合は空文字列。
    """
    if not reports:
        return ""
    lines = "\n".join(
        f"- **{r.agent_name}**: {r.error_message or 'quota or authentication error'}"
        for r in reports
    )
    return (
        "## Service Errors\n\n"
        "These agents could not review the change because of a quota or "
        "authentication problem. They are not code findings.\n\n"
        f"{lines}"
    )
