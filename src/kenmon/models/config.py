"""設定管理モデル。"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Annotated, Final

from pydantic import Field, StrictBool, StringConstraints, field_validator

from kenmon.agents.models import AGENT_NAME_PATTERN
from kenmon.models._base import KenmonBaseModel, normalize_enum_value

_AGENT_NAME_RE: re.Pattern[str] = re.compile(AGENT_NAME_PATTERN)

DEFAULT_MAX_DIFF_SIZE: Final[int] = 20000
"""エージェントに渡す diff の最大バイト数。"""

DEFAULT_TIMEOUT_SECONDS: Final[int] = 120
"""全エージェント共通のディスパッチ期限（秒）。"""

DEFAULT_MAX_TURNS: Final[int] = 10

DEFAULT_MODEL: Final[str] = "claudecode:claude-sonnet-4-5"

DEFAULT_COMMAND: Final[tuple[str, ...]] = (
    "copilot",
    "-p",
    "{prompt}",
    "--silent",
    "--allow-all-tools",
    "--no-color",
)
"""外部コマンド呼び出しの argv テンプレート。{prompt} / {model} を置換する。"""

DEFAULT_FILE_PATTERNS: Final[tuple[str, ...]] = ("*.java",)

DEFAULT_OUTPUT_DIR: Final[str] = ".kenmon"


class OutputFormat(StrEnum):
    """レビュー結果の出力形式。"""

    MARKDOWN = "markdown"
    JSON = "json"


class InvokerKind(StrEnum):
    """エージェント呼び出しのバックエンド種別。

    MODEL: pydantic-ai 経由で LLM モデルを呼び出す。
    COMMAND: 外部 CLI（copilot 等）をサブプロセスとして呼び出す。
    """

    MODEL = "model"
    COMMAND = "command"


class AgentConfig(KenmonBaseModel):
    """エージェント個別設定。

    model は None の場合グローバル設定値が適用される。
    """

    enabled: StrictBool = True
    model: str | None = Field(default=None, min_length=1)


class KenmonConfig(KenmonBaseModel):
    """全設定項目を統合した不変モデル。

    デフォルト値のみで有効なインスタンスを構築可能。
    """

    # ゲート設定
    enabled: StrictBool = True
    skip_sensitive_check: StrictBool = False
    max_diff_size: int = Field(default=DEFAULT_MAX_DIFF_SIZE, gt=0)
    file_patterns: tuple[Annotated[str, StringConstraints(min_length=1)], ...] = (
        DEFAULT_FILE_PATTERNS
    )

    # 実行設定
    timeout: int = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    invoker: InvokerKind = InvokerKind.MODEL
    model: str = Field(default=DEFAULT_MODEL, min_length=1)
    command: tuple[Annotated[str, StringConstraints(min_length=1)], ...] = Field(
        default=DEFAULT_COMMAND, min_length=1
    )
    max_turns: int = Field(default=DEFAULT_MAX_TURNS, gt=0)
    max_retries: int = Field(default=0, ge=0)

    # 出力設定
    output_format: OutputFormat = OutputFormat.MARKDOWN
    save_reports: StrictBool = True
    output_dir: str = Field(default=DEFAULT_OUTPUT_DIR, min_length=1)

    # エージェント個別設定
    agents: dict[str, AgentConfig] = Field(default_factory=dict)

    @field_validator("invoker", mode="before")
    @classmethod
    def _normalize_invoker(cls, v: object) -> object:
        return normalize_enum_value(v, InvokerKind)

    @field_validator("output_format", mode="before")
    @classmethod
    def _normalize_output_format(cls, v: object) -> object:
        return normalize_enum_value(v, OutputFormat)

    @field_validator("agents")
    @classmethod
    def validate_agent_names(cls, v: dict[str, AgentConfig]) -> dict[str, AgentConfig]:
        """エージェント名の形式を検証する。"""
        for name in v:
            if not _AGENT_NAME_RE.fullmatch(name):
                msg = (
                    f"Invalid agent name '{name}': "
                    f"must match pattern {AGENT_NAME_PATTERN}"
                )
                raise ValueError(msg)
        return v

    def model_for(self, agent_name: str) -> str:
        """エージェントに適用するモデル名を返す（個別設定 > グローバル）。"""
        agent_config = self.agents.get(agent_name)
        if agent_config is not None and agent_config.model is not None:
            return agent_config.model
        return self.model

    def disabled_agents(self) -> frozenset[str]:
        """enabled=false のエージェント名集合を返す。"""
        return frozenset(
            name for name, agent_cfg in self.agents.items() if not agent_cfg.enabled
        )
