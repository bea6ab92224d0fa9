"""ゲート判定（Decision）と判定結果（Verdict）の定義。

Decision は独立に保存されず、常に Report の純関数として導出される。
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from types import MappingProxyType
from typing import Final

from kenmon.models._base import KenmonBaseModel
from kenmon.models.exit_code import ExitCode
from kenmon.models.finding import Finding


class Decision(StrEnum):
    """コミット可否の判定。

    SERVICE_UNAVAILABLE は全エージェント失敗時のフェイルオープン（許可の一種）。
    """

    ALLOW = "ALLOW"
    ALLOW_WITH_WARNINGS = "ALLOW_WITH_WARNINGS"
    BLOCK = "BLOCK"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


DECISION_EXIT_CODES: Final[Mapping[Decision, ExitCode]] = MappingProxyType(
    {
        Decision.ALLOW: ExitCode.SUCCESS,
        Decision.ALLOW_WITH_WARNINGS: ExitCode.SUCCESS,
        Decision.SERVICE_UNAVAILABLE: ExitCode.SUCCESS,
        Decision.BLOCK: ExitCode.BLOCKED,
    }
)
"""判定 → プロセス終了コードの対応表。BLOCK のみ非ゼロ。"""

assert set(DECISION_EXIT_CODES.keys()) == set(Decision), (
    "DECISION_EXIT_CODES keys must match Decision members"
)


class Verdict(KenmonBaseModel):
    """DecisionEngine の出力。呼び出し元が描画に使う指摘一覧を含む。

    Attributes:
        decision: ゲート判定。
        exit_code: 判定に対応する終了コード。
        findings: 重複排除済みの全指摘。
        summary: Report のサマリー文。
    """

    decision: Decision
    exit_code: ExitCode
    findings: tuple[Finding, ...] = ()
    summary: str = ""
