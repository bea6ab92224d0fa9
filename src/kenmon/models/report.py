"""集約レポート（Report）の定義。

Aggregator が1回だけ構築し、DecisionEngine が1回だけ消費する。構築後は不変。
"""

from __future__ import annotations

from pydantic import Field, model_validator

from kenmon.models._base import KenmonBaseModel
from kenmon.models.agent_report import AgentReport, FailureKind
from kenmon.models.finding import Finding
from kenmon.models.severity import Severity


class Report(KenmonBaseModel):
    """全エージェントの指摘を重複排除・集約したレポート。

    Attributes:
        findings: 重複排除済みの指摘（重大度降順・位置順）。
        block_count: BLOCK 指摘数。
        warn_count: WARN 指摘数。
        info_count: INFO 指摘数。
        summary: 人間向けの短いサマリー。
        degraded: いずれかのエージェントの parse_status が OK でない場合 True。
        all_agents_failed: 全エージェントが FAILED / TIMED_OUT で終了した場合 True。
        agent_reports: 集約元のエージェントレポート（エージェント名順）。
    """

    findings: tuple[Finding, ...] = ()
    block_count: int = Field(default=0, ge=0)
    warn_count: int = Field(default=0, ge=0)
    info_count: int = Field(default=0, ge=0)
    summary: str = ""
    degraded: bool = False
    all_agents_failed: bool = False
    agent_reports: tuple[AgentReport, ...] = ()

    @model_validator(mode="after")
    def _check_counts(self) -> Report:
        """件数フィールドが findings の重大度別件数と一致することを検証する。"""
        expected = {
            Severity.BLOCK: self.block_count,
            Severity.WARN: self.warn_count,
            Severity.INFO: self.info_count,
        }
        for severity, count in expected.items():
            actual = sum(1 for f in self.findings if f.severity == severity)
            if actual != count:
                raise ValueError(
                    f"{severity.value.lower()}_count={count} does not match "
                    f"{actual} {severity.value} finding(s)"
                )
        if self.all_agents_failed and self.findings:
            raise ValueError("findings must be empty when all agents failed")
        return self

    @property
    def total_count(self) -> int:
        """重複排除後の指摘総数。"""
        return len(self.findings)

    @property
    def service_errors(self) -> tuple[AgentReport, ...]:
        """クォータ超過・認証エラーと判定されたエージェントレポート。"""
        return tuple(
            r for r in self.agent_reports if r.failure_kind == FailureKind.QUOTA_OR_AUTH
        )
