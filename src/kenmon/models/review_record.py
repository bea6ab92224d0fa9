"""レビュー記録（ReviewRecord）の定義。

直近のレビュー結果を last_review.json として保存するためのモデル。
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from kenmon.models._base import KenmonBaseModel
from kenmon.models.agent_report import AgentReport, FailureKind, ParseStatus
from kenmon.models.agent_task import TaskStatus
from kenmon.models.decision import Decision, Verdict
from kenmon.models.finding import Finding
from kenmon.models.report import Report


class AgentStatusRecord(KenmonBaseModel):
    """エージェント1件の実行・解析状態。生出力は含めない。"""

    agent_name: str = Field(min_length=1)
    task_status: TaskStatus
    parse_status: ParseStatus
    dialect: str | None = None
    failure_kind: FailureKind | None = None
    error_message: str | None = None
    finding_count: int = Field(ge=0)
    dropped_items: int = Field(default=0, ge=0)

    @classmethod
    def from_report(cls, report: AgentReport) -> AgentStatusRecord:
        return cls(
            agent_name=report.agent_name,
            task_status=report.task_status,
            parse_status=report.parse_status,
            dialect=report.dialect,
            failure_kind=report.failure_kind,
            error_message=report.error_message,
            finding_count=len(report.findings),
            dropped_items=report.dropped_items,
        )


class ReviewRecord(KenmonBaseModel):
    """1回のレビューサイクルの集約記録。

    Attributes:
        reviewed_at: レビュー実行日時。
        decision: ゲート判定。
        exit_code: 判定に対応する終了コード。
        summary: Report のサマリー文。
        block_count: BLOCK 指摘数。
        warn_count: WARN 指摘数。
        info_count: INFO 指摘数。
        degraded: 一部エージェントの解析が OK でなかったか。
        all_agents_failed: 全エージェントが失敗したか。
        findings: 重複排除済みの指摘（provenance 付き）。
        agents: エージェントごとの状態。
    """

    reviewed_at: datetime
    decision: Decision
    exit_code: int
    summary: str
    block_count: int = Field(ge=0)
    warn_count: int = Field(ge=0)
    info_count: int = Field(ge=0)
    degraded: bool
    all_agents_failed: bool
    findings: tuple[Finding, ...] = ()
    agents: tuple[AgentStatusRecord, ...] = ()

    @classmethod
    def build(
        cls, verdict: Verdict, report: Report, reviewed_at: datetime
    ) -> ReviewRecord:
        return cls(
            reviewed_at=reviewed_at,
            decision=verdict.decision,
            exit_code=int(verdict.exit_code),
            summary=report.summary,
            block_count=report.block_count,
            warn_count=report.warn_count,
            info_count=report.info_count,
            degraded=report.degraded,
            all_agents_failed=report.all_agents_failed,
            findings=report.findings,
            agents=tuple(AgentStatusRecord.from_report(r) for r in report.agent_reports),
        )
