"""CLI テスト共通フィクスチャ・ヘルパー。"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from kenmon.agents import AgentDefinition, LoadError, LoadResult
from kenmon.engine import EngineResult, RunStatus
from kenmon.models.agent_report import AgentReport, FailureKind, ParseStatus
from kenmon.models.agent_task import TaskStatus
from kenmon.models.config import KenmonConfig
from kenmon.models.decision import DECISION_EXIT_CODES, Decision, Verdict
from kenmon.models.exit_code import ExitCode
from kenmon.models.finding import Finding
from kenmon.models.report import Report

PATCH_RUN_GATE = "kenmon.cli._app.run_gate"
PATCH_RESOLVE_CONFIG = "kenmon.cli._app.resolve_config"
PATCH_LOAD_AGENTS = "kenmon.cli._app.load_agents"
PATCH_LOAD_BUILTIN_AGENTS = "kenmon.cli._app.load_builtin_agents"
PATCH_FIND_PROJECT_ROOT = "kenmon.cli._app.find_project_root"


def make_finding(
    severity: str = "BLOCK",
    message: str = "Hardcoded password",
    agent: str = "security",
    **extra: object,
) -> Finding:
    return Finding.model_validate(
        {
            "severity": severity,
            "file": "src/Db.java",
            "line": 4,
            "message": message,
            "source_agent": agent,
            **extra,
        }
    )


def make_reviewed_result(
    decision: Decision = Decision.ALLOW,
    findings: tuple[Finding, ...] = (),
    agent_reports: tuple[AgentReport, ...] | None = None,
    all_agents_failed: bool = False,
) -> EngineResult:
    """テスト用の REVIEWED な EngineResult を生成する。"""
    if agent_reports is None:
        agent_reports = (
            AgentReport(
                agent_name="security",
                findings=findings,
                parse_status=ParseStatus.OK,
                task_status=TaskStatus.COMPLETED,
                raw_output='{"issues": []}',
            ),
        )
    report = Report(
        findings=findings,
        block_count=sum(1 for f in findings if f.severity == "BLOCK"),
        warn_count=sum(1 for f in findings if f.severity == "WARN"),
        info_count=sum(1 for f in findings if f.severity == "INFO"),
        summary=f"{len(findings)} finding(s)",
        degraded=any(r.parse_status != ParseStatus.OK for r in agent_reports),
        all_agents_failed=all_agents_failed,
        agent_reports=agent_reports,
    )
    exit_code = DECISION_EXIT_CODES[decision]
    return EngineResult(
        status=RunStatus.REVIEWED,
        exit_code=exit_code,
        verdict=Verdict(
            decision=decision,
            exit_code=exit_code,
            findings=findings,
            summary=report.summary,
        ),
        report=report,
        reviewed_files=("src/Db.java",),
    )


def make_quota_report(agent: str = "naming") -> AgentReport:
    return AgentReport(
        agent_name=agent,
        parse_status=ParseStatus.FAILED,
        task_status=TaskStatus.FAILED,
        failure_kind=FailureKind.QUOTA_OR_AUTH,
        error_message="Error: rate limit exceeded",
        raw_output="Error: rate limit exceeded",
    )


def make_engine_result(
    status: RunStatus = RunStatus.SKIPPED,
    exit_code: ExitCode = ExitCode.SUCCESS,
    message: str = "No matching staged files to review",
) -> EngineResult:
    """テスト用の REVIEWED 以外の EngineResult を生成する。"""
    return EngineResult(status=status, exit_code=exit_code, message=message)


def setup_mocks(
    mock_config: MagicMock,
    mock_run_gate: AsyncMock,
    result: EngineResult | None = None,
    config: KenmonConfig | None = None,
) -> None:
    """共通のモックセットアップ。"""
    mock_config.return_value = config if config is not None else KenmonConfig(
        save_reports=False
    )
    mock_run_gate.return_value = result if result is not None else make_reviewed_result()


def make_agent_definition(name: str = "security") -> AgentDefinition:
    return AgentDefinition(
        name=name,
        checklist_ref=f"{name}/checklist.yaml",
        prompt_template_ref=f"{name}/prompt.txt",
        checklist="- rule",
        prompt_template="{checklist}\n{diff}",
    )


def make_load_result(
    agents: tuple[AgentDefinition, ...] = (),
    errors: tuple[LoadError, ...] = (),
) -> LoadResult:
    """テスト用の LoadResult を生成する。"""
    return LoadResult(agents=agents, errors=errors)
