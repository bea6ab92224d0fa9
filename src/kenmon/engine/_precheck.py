"""SensitiveDataPrecheck — 外部送信前の機密情報らしき記述の検査。

検査は助言的で、それ自体はコミットをブロックしない。
一致があればディスパッチを続行するかの確認を呼び出し元に求める。
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from enum import StrEnum
from types import MappingProxyType
from typing import Final

from pydantic import Field

from kenmon.models._base import KenmonBaseModel

SENSITIVE_PATTERNS: Final[Mapping[str, re.Pattern[str]]] = MappingProxyType(
    {
        "password": re.compile(r"password\s*=", re.IGNORECASE),
        "secret": re.compile(r"secret\s*=", re.IGNORECASE),
        "api_key": re.compile(r"api[_-]?key\s*=", re.IGNORECASE),
        "token": re.compile(r"token\s*=", re.IGNORECASE),
        "credential": re.compile(r"credential", re.IGNORECASE),
        "private_key": re.compile(r"private[_-]?key", re.IGNORECASE),
    }
)
"""種別名 → 検出パターン。大文字小文字を区別しない。"""

_DIFF_NEW_FILE_RE: Final[re.Pattern[str]] = re.compile(r"^\+\+\+ (?:b/)?(.+)$")


class SensitiveMatch(KenmonBaseModel):
    """機密情報らしき記述の検出位置。

    Attributes:
        kind: SENSITIVE_PATTERNS の種別名。
        file: 検出行が属する diff 上のファイル。特定できない場合は None。
        diff_line: diff テキスト内の行番号（1 始まり）。
    """

    kind: str = Field(min_length=1)
    file: str | None = None
    diff_line: int = Field(ge=1)


class PrecheckOutcome(StrEnum):
    """事前検査の結果。"""

    CLEAN = "clean"
    BYPASSED = "bypassed"
    CONFIRMED = "confirmed"
    DECLINED = "declined"


class PrecheckResult(KenmonBaseModel):
    """事前検査の結果と検出一覧。"""

    outcome: PrecheckOutcome
    matches: tuple[SensitiveMatch, ...] = ()

    @property
    def proceed(self) -> bool:
        """ディスパッチを続行してよいか。"""
        return self.outcome != PrecheckOutcome.DECLINED


ConfirmCallback = Callable[[Sequence[SensitiveMatch]], bool]
"""検出一覧を受け取り、続行する場合に True を返す確認関数。"""


def scan_sensitive_data(diff_text: str) -> list[SensitiveMatch]:
    """diff テキストを走査し、機密情報らしき記述を列挙する。

    1行に複数種別が一致した場合は種別ごとに1件ずつ返す。
    """
    matches: list[SensitiveMatch] = []
    current_file: str | None = None
    for line_number, line in enumerate(diff_text.splitlines(), start=1):
        header = _DIFF_NEW_FILE_RE.match(line)
        if header is not None:
            current_file = header.group(1).strip()
            continue
        for kind, pattern in SENSITIVE_PATTERNS.items():
            if pattern.search(line):
                matches.append(
                    SensitiveMatch(kind=kind, file=current_file, diff_line=line_number)
                )
    return matches


def run_precheck(
    diff_text: str,
    *,
    bypass: bool,
    confirm: ConfirmCallback | None,
) -> PrecheckResult:
    """事前検査を実行し、ディスパッチ続行可否を決定する。

    bypass が True の場合は走査そのものを行わない。一致があり確認関数が
    None の場合は、明示的な承認が得られないため DECLINED とする。

    Args:
        diff_text: 切り詰め済みの diff テキスト。
        bypass: 検査を省略するフラグ。
        confirm: 一致時に呼び出す確認関数。

    Returns:
        検査結果。
    """
    if bypass:
        return PrecheckResult(outcome=PrecheckOutcome.BYPASSED)

    matches = tuple(scan_sensitive_data(diff_text))
    if not matches:
        return PrecheckResult(outcome=PrecheckOutcome.CLEAN)

    approved = confirm is not None and confirm(matches)
    return PrecheckResult(
        outcome=PrecheckOutcome.CONFIRMED if approved else PrecheckOutcome.DECLINED,
        matches=matches,
    )
