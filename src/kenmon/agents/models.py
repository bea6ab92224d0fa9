"""エージェント定義モデル。

AgentDefinition（エージェント定義）、LoadError（読み込みエラー）、
LoadResult（読み込み結果）を定義する。
"""

from __future__ import annotations

from typing import Final

from pydantic import Field, field_validator

from kenmon.models._base import KenmonBaseModel

AGENT_NAME_PATTERN: Final[str] = r"^[a-z0-9-]+$"
"""エージェント名のバリデーションパターン。"""

CHECKLIST_PLACEHOLDER: Final[str] = "{checklist}"
"""プロンプトテンプレート内のチェックリスト差し込み位置。"""

DIFF_PLACEHOLDER: Final[str] = "{diff}"
"""プロンプトテンプレート内の diff 差し込み位置。"""


# =============================================================================
# LoadError（読み込みエラー情報）
# =============================================================================


class LoadError(KenmonBaseModel):
    """エージェント定義読み込み時のエラー情報。"""

    source: str = Field(min_length=1)
    message: str = Field(min_length=1)


# =============================================================================
# AgentDefinition（エージェント定義）
# =============================================================================


class AgentDefinition(KenmonBaseModel):
    """レビューエージェント1件の構成。エージェントディレクトリから構築される。

    Attributes:
        name: エージェント名（ディレクトリ名）。小文字英数字とハイフンのみ。
        checklist_ref: チェックリスト文書のパス。
        prompt_template_ref: プロンプトテンプレートのパス。
        checklist: チェックリスト本文。
        prompt_template: {checklist} と {diff} を含むプロンプトテンプレート。
    """

    name: str = Field(min_length=1, pattern=AGENT_NAME_PATTERN)
    checklist_ref: str = Field(min_length=1)
    prompt_template_ref: str = Field(min_length=1)
    checklist: str = Field(min_length=1)
    prompt_template: str = Field(min_length=1)

    @field_validator("prompt_template")
    @classmethod
    def _require_placeholders(cls, v: str) -> str:
        """テンプレートが両方のプレースホルダーを含むことを検証する。"""
        missing = [p for p in (CHECKLIST_PLACEHOLDER, DIFF_PLACEHOLDER) if p not in v]
        if missing:
            raise ValueError(
                f"prompt template is missing placeholder(s): {', '.join(missing)}"
            )
        return v


# =============================================================================
# LoadResult（読み込み結果）
# =============================================================================


class LoadResult(KenmonBaseModel):
    """エージェント定義の読み込み結果。

    正常に読み込まれたエージェント定義と、スキップされたエラー情報を分離して保持する。
    呼び出し元がエラー情報の表示方法を決定できる。
    """

    agents: tuple[AgentDefinition, ...]
    errors: tuple[LoadError, ...] = ()
