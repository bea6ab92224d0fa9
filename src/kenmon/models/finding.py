"""レビュー指摘（Finding）の定義。

エージェント出力から解析された1件の指摘。解析後は不変。
"""

from __future__ import annotations

from typing import Final

from pydantic import Field, field_validator, model_validator

from kenmon.models._base import KenmonBaseModel
from kenmon.models.severity import Severity, normalize_severity

UNKNOWN_FILE: Final[str] = "unknown"
"""ファイル指定がない指摘のファイル名。"""

UNKNOWN_LINE: Final[int] = 0
"""行番号指定がない指摘の行番号。"""


class Finding(KenmonBaseModel):
    """エージェントが報告した1件の指摘。

    Attributes:
        rule_id: チェックリスト上のルール識別子（任意）。
        severity: 正規化済みの重大度。
        file: 対象ファイルパス。不明な場合は "unknown"。
        line: 対象行番号。不明な場合は 0。
        message: 指摘内容。
        source_agent: 指摘を最初に報告したエージェント名。
        confidence: エージェント自己申告の確信度（0.0-1.0、任意）。
        provenance: 同一指摘を報告した全エージェント名。source_agent を必ず含む。
    """

    rule_id: str | None = Field(default=None, min_length=1)
    severity: Severity
    file: str = Field(default=UNKNOWN_FILE, min_length=1)
    line: int = Field(default=UNKNOWN_LINE, ge=0)
    message: str = Field(min_length=1)
    source_agent: str = Field(min_length=1)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0, allow_inf_nan=False)
    provenance: tuple[str, ...] = ()

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, v: object) -> object:
        """CRITICAL / HIGH / LOW などのトークンを3段階に正規化する。"""
        return normalize_severity(v)

    @field_validator("message", "rule_id", mode="before")
    @classmethod
    def _strip_text(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("file", mode="before")
    @classmethod
    def _default_file(cls, v: object) -> object:
        """空・None のファイル指定を "unknown" に置き換える。"""
        if v is None:
            return UNKNOWN_FILE
        if isinstance(v, str):
            stripped = v.strip()
            return stripped or UNKNOWN_FILE
        return v

    @field_validator("line", mode="before")
    @classmethod
    def _default_line(cls, v: object) -> object:
        """None・非数値文字列の行番号を 0 に置き換える。"""
        if v is None:
            return UNKNOWN_LINE
        if isinstance(v, str):
            stripped = v.strip()
            return int(stripped) if stripped.isdigit() else UNKNOWN_LINE
        return v

    @model_validator(mode="before")
    @classmethod
    def _default_provenance(cls, data: object) -> object:
        """provenance 未指定時は source_agent のみで初期化する。"""
        if not isinstance(data, dict):
            return data
        if not data.get("provenance") and isinstance(data.get("source_agent"), str):
            return {**data, "provenance": (data["source_agent"],)}
        return data

    @model_validator(mode="after")
    def _check_provenance(self) -> Finding:
        """provenance が source_agent を含むことを検証する。"""
        if self.source_agent not in self.provenance:
            raise ValueError("provenance must include source_agent")
        return self

    @property
    def location(self) -> str:
        """表示用の位置文字列（``file:line``、行不明時は ``file``）。"""
        if self.line == UNKNOWN_LINE:
            return self.file
        return f"{self.file}:{self.line}"
