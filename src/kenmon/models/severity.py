"""重大度（Severity）の定義。

BLOCK > WARN > INFO の3段階順序。
エージェントごとに揺れる重大度トークンは SEVERITY_ALIASES で3段階に正規化する。
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from types import MappingProxyType
from typing import Final


SEVERITY_ORDER: Final[Mapping[str, int]] = MappingProxyType(
    {
        "INFO": 0,
        "WARN": 1,
        "BLOCK": 2,
    }
)


class Severity(StrEnum):
    """指摘の重大度。大文字で内部保持。

    順序関係: BLOCK > WARN > INFO
    比較演算は SEVERITY_ORDER に基づくカスタム実装を提供する。
    非 Severity 型との比較は TypeError を送出する。
    """

    BLOCK = "BLOCK"
    WARN = "WARN"
    INFO = "INFO"

    def _order(self) -> int:
        """SEVERITY_ORDER から重大度の順序値を取得する。"""
        return SEVERITY_ORDER[self.value]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            raise TypeError(
                f"'<' not supported between instances of 'Severity' and '{type(other).__name__}'"
            )
        return self._order() < other._order()

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            raise TypeError(
                f"'<=' not supported between instances of 'Severity' and '{type(other).__name__}'"
            )
        return self._order() <= other._order()

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            raise TypeError(
                f"'>' not supported between instances of 'Severity' and '{type(other).__name__}'"
            )
        return self._order() > other._order()

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            raise TypeError(
                f"'>=' not supported between instances of 'Severity' and '{type(other).__name__}'"
            )
        return self._order() >= other._order()


SEVERITY_ALIASES: Final[Mapping[str, Severity]] = MappingProxyType(
    {
        "BLOCK": Severity.BLOCK,
        "CRITICAL": Severity.BLOCK,
        "WARN": Severity.WARN,
        "WARNING": Severity.WARN,
        "HIGH": Severity.WARN,
        "MEDIUM": Severity.WARN,
        "INFO": Severity.INFO,
        "LOW": Severity.INFO,
    }
)
"""ソーストークン（大文字化済み）→ 正規 Severity の対応表。

HIGH は非ブロッキング（WARN）として扱う。
"""


def normalize_severity(v: object) -> object:
    """重大度トークンを正規の Severity 値に変換する。

    大文字小文字・前後空白・角括弧（``[HIGH]`` 形式）を無視して
    SEVERITY_ALIASES と照合する。マッチしない str や str 以外の入力は
    そのまま返し、後続の Pydantic バリデーションに委ねる。
    """
    if isinstance(v, Severity):
        return v
    if isinstance(v, str):
        token = v.strip().strip("[]").strip().upper()
        severity = SEVERITY_ALIASES.get(token)
        if severity is not None:
            return severity.value
    return v
