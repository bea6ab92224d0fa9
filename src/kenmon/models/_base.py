"""全ドメインモデルの基底クラスと共通ユーティリティ。"""

from enum import StrEnum
from typing import TypeVar

from pydantic import BaseModel, ConfigDict


class KenmonBaseModel(BaseModel):
    """全ドメインモデルの基底クラス。extra="forbid" と frozen を一元管理。"""

    model_config = ConfigDict(extra="forbid", frozen=True)


E = TypeVar("E", bound=StrEnum)


def normalize_enum_value(v: object, enum_cls: type[E]) -> object:
    """StrEnum 入力を正規化する（大文字小文字・前後空白非依存）。

    str 入力を enum_cls のメンバー値と case-insensitive でマッチし、
    正規の値文字列に変換する。マッチしない str や str 以外の入力は
    そのまま返し、後続の Pydantic バリデーションに委ねる。

    Args:
        v: バリデーション対象の入力値。
        enum_cls: マッチ対象の StrEnum クラス。

    Returns:
        正規化された値文字列、またはマッチしない場合は入力値そのまま。
    """
    if isinstance(v, str):
        stripped = v.strip().lower()
        for member in enum_cls:
            if stripped == member.value.lower():
                return member.value
    return v
