"""Aggregator — 全エージェントの指摘の統合・重複排除・集計。

同一インシデントの判定:
    - 正規化後のファイルパスが一致する
    - 行番号が一致する（どちらかが不明 = 0 の場合はファイル一致のみで可）
    - メッセージが類似している（正規化後の一致、SequenceMatcher の類似度、
      または主要語の重なり）

統合後の指摘は最も高い重大度を保持し、寄与した全エージェント名を provenance に記録する。
結果は入力順に依存しない（正規順序で並べてからクラスタリングする）。
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from difflib import SequenceMatcher
from typing import Final

from kenmon.models.agent_report import AgentReport, ParseStatus
from kenmon.models.finding import UNKNOWN_LINE, Finding
from kenmon.models.report import Report
from kenmon.models.severity import SEVERITY_ORDER, Severity

MESSAGE_SIMILARITY_THRESHOLD: Final[float] = 0.75
"""正規化メッセージの SequenceMatcher 類似度の閾値。"""

TOKEN_OVERLAP_THRESHOLD: Final[float] = 0.75
"""主要語の重なり係数（共通語数 / 少ない側の語数）の閾値。"""

_MIN_OVERLAP_TOKENS: Final[int] = 2
_WORD_RE: Final[re.Pattern[str]] = re.compile(r"[a-z0-9_]+")
_STOPWORDS: Final[frozenset[str]] = frozenset(
    {
        "a", "an", "the", "is", "are", "was", "be", "been", "of", "in", "on",
        "at", "to", "for", "and", "or", "this", "that", "it", "with", "should",
        "may", "can", "not",
    }
)


# =============================================================================
# 類似判定
# =============================================================================


def _normalize_path(path: str) -> str:
    """比較用にパスを正規化する（区切り文字と先頭の ./ のみを統一）。"""
    normalized = path.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized.removeprefix("./")
    return normalized


def _normalize_message(message: str) -> str:
    return " ".join(_WORD_RE.findall(message.lower()))


def _key_tokens(normalized: str) -> frozenset[str]:
    return frozenset(t for t in normalized.split() if t not in _STOPWORDS)


def messages_similar(a: str, b: str) -> bool:
    """2つのメッセージが同一インシデントを指すとみなせるか。"""
    norm_a = _normalize_message(a)
    norm_b = _normalize_message(b)
    if norm_a == norm_b:
        return True
    if SequenceMatcher(None, norm_a, norm_b).ratio() >= MESSAGE_SIMILARITY_THRESHOLD:
        return True
    tokens_a = _key_tokens(norm_a)
    tokens_b = _key_tokens(norm_b)
    smaller = min(len(tokens_a), len(tokens_b))
    if smaller < _MIN_OVERLAP_TOKENS:
        return False
    return len(tokens_a & tokens_b) / smaller >= TOKEN_OVERLAP_THRESHOLD


def _lines_compatible(a: Finding, b: Finding) -> bool:
    return a.line == b.line or UNKNOWN_LINE in (a.line, b.line)


def is_same_incident(a: Finding, b: Finding) -> bool:
    """2つの指摘が同一インシデントか。"""
    return (
        _normalize_path(a.file) == _normalize_path(b.file)
        and _lines_compatible(a, b)
        and messages_similar(a.message, b.message)
    )


# =============================================================================
# クラスタリングと統合
# =============================================================================


def _canonical_key(finding: Finding) -> tuple[object, ...]:
    """入力順に依存しない全順序を与えるソートキー。"""
    return (
        _normalize_path(finding.file),
        finding.line,
        -SEVERITY_ORDER[finding.severity.value],
        _normalize_message(finding.message),
        finding.message,
        finding.source_agent,
        finding.rule_id or "",
        finding.confidence if finding.confidence is not None else -1.0,
        finding.provenance,
    )


def _report_key(finding: Finding) -> tuple[object, ...]:
    """出力順: 重大度降順 → ファイル → 行 → メッセージ。"""
    return (-SEVERITY_ORDER[finding.severity.value], *_canonical_key(finding))


def _merge_cluster(cluster: Sequence[Finding]) -> Finding:
    """クラスタを1件の指摘に統合する。

    代表は最も重大度の高い指摘（同順位は正規順序で先頭のもの）。
    """
    if len(cluster) == 1:
        return cluster[0]

    primary = max(cluster, key=lambda f: SEVERITY_ORDER[f.severity.value])
    line = primary.line
    if line == UNKNOWN_LINE:
        line = next((f.line for f in cluster if f.line != UNKNOWN_LINE), UNKNOWN_LINE)
    confidences = [f.confidence for f in cluster if f.confidence is not None]
    provenance = sorted({agent for f in cluster for agent in f.provenance})

    return primary.model_copy(
        update={
            "line": line,
            "rule_id": primary.rule_id
            or next((f.rule_id for f in cluster if f.rule_id is not None), None),
            "confidence": max(confidences) if confidences else None,
            "provenance": tuple(provenance),
        }
    )


def deduplicate_findings(findings: Iterable[Finding]) -> tuple[Finding, ...]:
    """指摘を重複排除し、重大度降順・位置順で返す。

    各指摘は、既存クラスタの全メンバーと行が両立し、いずれかのメンバーと
    同一インシデントと判定された場合にそのクラスタへ加わる。
    同じ集合に対しては入力順によらず同じ結果を返す。
    """
    clusters: list[list[Finding]] = []
    for finding in sorted(findings, key=_canonical_key):
        for cluster in clusters:
            if all(_lines_compatible(finding, m) for m in cluster) and any(
                is_same_incident(finding, m) for m in cluster
            ):
                cluster.append(finding)
                break
        else:
            clusters.append([finding])

    merged = [_merge_cluster(cluster) for cluster in clusters]
    return tuple(sorted(merged, key=_report_key))


# =============================================================================
# Report の構築
# =============================================================================


def _build_summary(
    findings: Sequence[Finding],
    reports: Sequence[AgentReport],
    counts: dict[Severity, int],
    all_failed: bool,
) -> str:
    if not reports:
        return "No review agents were run"
    if all_failed:
        return (
            f"No agent produced a review "
            f"(all {len(reports)} agent(s) failed or timed out)"
        )

    succeeded = sum(1 for r in reports if r.parse_status != ParseStatus.FAILED)
    summary = (
        f"{len(findings)} finding(s) from {succeeded}/{len(reports)} agent(s): "
        f"{counts[Severity.BLOCK]} BLOCK, {counts[Severity.WARN]} WARN, "
        f"{counts[Severity.INFO]} INFO"
    )
    degraded = [r for r in reports if r.parse_status != ParseStatus.OK]
    if degraded:
        details = ", ".join(
            f"{r.agent_name} ({r.failure_kind or r.parse_status})" for r in degraded
        )
        summary += f"; degraded: {details}"
    return summary


def aggregate_reports(reports: Iterable[AgentReport]) -> Report:
    """全エージェントレポートを1件の Report に集約する。

    FAILED / DEGRADED のレポートも受け付ける（FAILED は指摘を持たない）。

    Args:
        reports: エージェントレポート（到着順は問わない）。

    Returns:
        重複排除・集計済みのレポート。
    """
    ordered = sorted(reports, key=lambda r: r.agent_name)
    findings = deduplicate_findings(f for r in ordered for f in r.findings)
    counts = {
        severity: sum(1 for f in findings if f.severity == severity)
        for severity in Severity
    }
    all_failed = bool(ordered) and all(r.task_failed for r in ordered)

    return Report(
        findings=findings,
        block_count=counts[Severity.BLOCK],
        warn_count=counts[Severity.WARN],
        info_count=counts[Severity.INFO],
        summary=_build_summary(findings, ordered, counts, all_failed),
        degraded=any(r.parse_status != ParseStatus.OK for r in ordered),
        all_agents_failed=all_failed,
        agent_reports=tuple(ordered),
    )
