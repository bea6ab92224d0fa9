"""エージェントタスク（AgentTask）の定義。

1回のディスパッチサイクルで1エージェントにつき1つ生成される。
モデルは不変で、状態遷移は model_copy(update=...) による新インスタンス生成で表す。
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field, field_validator

from kenmon.models._base import KenmonBaseModel, normalize_enum_value


class TaskStatus(StrEnum):
    """エージェントタスクの状態。

    遷移: PENDING → RUNNING → COMPLETED / FAILED / TIMED_OUT
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


TERMINAL_FAILURE_STATUSES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.FAILED, TaskStatus.TIMED_OUT}
)
"""指摘を一切提供しない終了状態の集合。"""


class AgentTask(KenmonBaseModel):
    """単一エージェントの実行単位。

    Attributes:
        name: エージェント名。
        checklist_ref: チェックリスト文書の参照（パス）。
        prompt_template_ref: プロンプトテンプレートの参照（パス）。
        status: 現在の状態。
        raw_output: エージェントの生出力。完了前・出力なしの場合は None。
        error_message: 失敗・タイムアウト時の説明。
        elapsed_time: 実行所要時間（秒）。未完了の場合は None。
        attempts: 呼び出し試行回数。
    """

    name: str = Field(min_length=1)
    checklist_ref: str = Field(min_length=1)
    prompt_template_ref: str = Field(min_length=1)
    status: TaskStatus = TaskStatus.PENDING
    raw_output: str | None = None
    error_message: str | None = None
    elapsed_time: float | None = Field(default=None, ge=0.0, allow_inf_nan=False)
    attempts: int = Field(default=0, ge=0)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v: object) -> object:
        return normalize_enum_value(v, TaskStatus)

    @property
    def is_failure(self) -> bool:
        """FAILED または TIMED_OUT で終了したか。"""
        return self.status in TERMINAL_FAILURE_STATUSES
