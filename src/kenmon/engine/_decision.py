"""DecisionEngine — Report からゲート判定への純関数。

判定規則（上から順に評価）:
    1. block_count > 0 → BLOCK
    2. 全エージェント失敗 → SERVICE_UNAVAILABLE（フェイルオープン）
    3. warn_count + info_count > 0 → ALLOW_WITH_WARNINGS
    4. それ以外 → ALLOW

この層では再試行を行わない。
"""

from __future__ import annotations

from kenmon.models.decision import DECISION_EXIT_CODES, Decision, Verdict
from kenmon.models.report import Report


def decide_decision(report: Report) -> Decision:
    """Report からゲート判定を導出する。"""
    if report.block_count > 0:
        return Decision.BLOCK
    if report.all_agents_failed:
        return Decision.SERVICE_UNAVAILABLE
    if report.warn_count + report.info_count > 0:
        return Decision.ALLOW_WITH_WARNINGS
    return Decision.ALLOW


def decide(report: Report) -> Verdict:
    """Report から判定・終了コード・描画用の指摘一覧を含む Verdict を構築する。"""
    decision = decide_decision(report)
    return Verdict(
        decision=decision,
        exit_code=DECISION_EXIT_CODES[decision],
        findings=report.findings,
        summary=report.summary,
    )
