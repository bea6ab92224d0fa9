"""エージェントレポート（AgentReport）の定義。

AgentTask 1件を解析した結果。Failed / Degraded の場合も必ず1件生成される。
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field, model_validator

from kenmon.models._base import KenmonBaseModel
from kenmon.models.agent_task import TERMINAL_FAILURE_STATUSES, TaskStatus
from kenmon.models.finding import Finding


class ParseStatus(StrEnum):
    """エージェント出力の解析状態。

    OK: 構造的に有効で、全指摘が検証を通過した。
    DEGRADED: 構造的に有効だが、一部の指摘が検証に失敗し除外された。
    FAILED: 出力がない、またはどの形式としても解析できなかった。
    """

    OK = "ok"
    DEGRADED = "degraded"
    FAILED = "failed"


class FailureKind(StrEnum):
    """指摘を提供できなかった理由の分類。"""

    INVOCATION = "invocation"
    TIMEOUT = "timeout"
    PARSE = "parse"
    QUOTA_OR_AUTH = "quota_or_auth"


class AgentReport(KenmonBaseModel):
    """単一エージェントの解析済みレポート。

    Attributes:
        agent_name: エージェント名。
        findings: 検証済みの指摘タプル。FAILED の場合は空。
        summary: エージェントが出力したサマリー文。
        parse_status: 解析状態。
        task_status: 元の AgentTask の終了状態。
        dialect: 解析に成功した出力形式名。FAILED の場合は None。
        failure_kind: 失敗理由。OK の場合は None。
        error_message: 失敗の説明。
        dropped_items: 検証に失敗して除外された指摘数。
        raw_output: 運用者確認用に保持する生出力。
    """

    agent_name: str = Field(min_length=1)
    findings: tuple[Finding, ...] = ()
    summary: str = ""
    parse_status: ParseStatus
    task_status: TaskStatus
    dialect: str | None = None
    failure_kind: FailureKind | None = None
    error_message: str | None = None
    dropped_items: int = Field(default=0, ge=0)
    raw_output: str | None = None

    @model_validator(mode="after")
    def _check_consistency(self) -> AgentReport:
        """parse_status と findings / failure_kind の整合性を検証する。

        - FAILED なら findings は空で failure_kind が必須。
        - OK なら failure_kind は None。
        """
        if self.parse_status == ParseStatus.FAILED:
            if self.findings:
                raise ValueError("findings must be empty when parse_status is failed")
            if self.failure_kind is None:
                raise ValueError("failure_kind is required when parse_status is failed")
        if self.parse_status == ParseStatus.OK and self.failure_kind is not None:
            raise ValueError("failure_kind must be None when parse_status is ok")
        return self

    @property
    def task_failed(self) -> bool:
        """元の AgentTask が FAILED / TIMED_OUT で終了したか。"""
        return self.task_status in TERMINAL_FAILURE_STATUSES
