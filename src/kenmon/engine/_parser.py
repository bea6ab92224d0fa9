"""ResponseParser — エージェント生出力の Finding への正規化。

出力形式（ダイアレクト）を順に試行し、最初に構造的に有効な結果を返したものを採用する:

1. FencedJsonDialect: ```json フェンス内の JSON オブジェクト
2. EmbeddedJsonDialect: 前後に説明文を伴う裸の JSON オブジェクト
3. MarkdownHeaderDialect: ``### [SEVERITY] Title`` 見出しと File:/Line:/Message: 行

構造的に有効とは、``issues`` または ``findings`` 配列を持つ JSON オブジェクト、
または1件以上の見出しを持つ markdown であること。
解析はエージェント単位で完結し、例外を呼び出し元に送出しない。
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Final, Protocol

from pydantic import ValidationError

from kenmon.models._base import KenmonBaseModel
from kenmon.models.agent_report import AgentReport, FailureKind, ParseStatus
from kenmon.models.agent_task import AgentTask, TaskStatus
from kenmon.models.finding import Finding

logger = logging.getLogger(__name__)

ITEM_ARRAY_KEYS: Final[tuple[str, ...]] = ("issues", "findings")
"""指摘配列として認識するキー（優先順）。"""

FIELD_ALIASES: Final[Mapping[str, tuple[str, ...]]] = MappingProxyType(
    {
        "severity": ("severity", "level", "priority"),
        "message": ("message", "description", "title"),
        "rule_id": ("rule_id", "ruleId", "rule", "id", "type", "category"),
        "file": ("file", "file_path", "filePath", "path", "filename"),
        "line": ("line", "line_number", "lineNumber", "line_start"),
        "confidence": ("confidence",),
    }
)
"""Finding フィールド → 指摘項目内で探索するキー（優先順）。"""

SERVICE_ERROR_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"rate[ _-]?limit|quota|too many requests|usage limit|credit balance|billing"
    r"|unauthori[sz]ed|forbidden|authentication|not authenticated|not logged in"
    r"|login required|invalid api[ _-]?key|api[ _-]?key (?:is )?(?:missing|invalid|not set)"
    r"|\b(?:401|403|429)\b",
    re.IGNORECASE,
)
"""クォータ超過・認証エラーを示す出力パターン。"""


# =============================================================================
# ダイアレクト
# =============================================================================


class DialectResult(KenmonBaseModel):
    """ダイアレクトが抽出した未検証の指摘項目。

    Attributes:
        items: 指摘項目（通常は dict）。検証は呼び出し元で行う。
        summary: エージェントのサマリー文。
    """

    items: tuple[Any, ...] = ()
    summary: str = ""


class ResponseDialect(Protocol):
    """応答形式の解析戦略。該当しない場合は None を返す。"""

    name: str

    def extract(self, text: str) -> DialectResult | None: ...


def _from_json_object(obj: object) -> DialectResult | None:
    """JSON 値が指摘配列を持つオブジェクトであれば DialectResult に変換する。"""
    if not isinstance(obj, dict):
        return None
    for key in ITEM_ARRAY_KEYS:
        items = obj.get(key)
        if isinstance(items, list):
            summary = obj.get("summary")
            return DialectResult(
                items=tuple(items),
                summary=summary.strip() if isinstance(summary, str) else "",
            )
    return None


class FencedJsonDialect:
    """```json（または言語指定なし）フェンス内の JSON オブジェクト。

    複数のフェンスがある場合は、先頭から順に最初に有効なものを採用する。
    """

    name = "fenced_json"
    _FENCE_RE: Final[re.Pattern[str]] = re.compile(
        r"```(?:json)?[ \t]*\r?\n(.*?)\r?\n[ \t]*```", re.DOTALL | re.IGNORECASE
    )

    def extract(self, text: str) -> DialectResult | None:
        for match in self._FENCE_RE.finditer(text):
            try:
                obj = json.loads(match.group(1))
            except json.JSONDecodeError:
                continue
            result = _from_json_object(obj)
            if result is not None:
                return result
        return None


class EmbeddedJsonDialect:
    """説明文中に埋め込まれた裸の JSON オブジェクト。

    各 ``{`` の位置から JSONDecoder.raw_decode を試行し、
    最初に有効なオブジェクトを採用する。
    """

    name = "embedded_json"

    def __init__(self) -> None:
        self._decoder = json.JSONDecoder()

    def extract(self, text: str) -> DialectResult | None:
        index = text.find("{")
        while index != -1:
            try:
                obj, _ = self._decoder.raw_decode(text, index)
            except json.JSONDecodeError:
                pass
            else:
                result = _from_json_object(obj)
                if result is not None:
                    return result
            index = text.find("{", index + 1)
        return None


class MarkdownHeaderDialect:
    """``### [SEVERITY] Title`` 見出しと File:/Line:/Message: 行の markdown。

    フィールド名の太字（``**File:**``）と箇条書き記号を許容する。
    Message 行がない場合は見出しのタイトルをメッセージとする。
    """

    name = "markdown_headers"
    _HEADER_RE: Final[re.Pattern[str]] = re.compile(
        r"^#{2,4}\s*\[\s*(?P<severity>[^\]]+?)\s*\]\s*(?P<title>.*?)\s*$"
    )
    _FIELD_RE: Final[re.Pattern[str]] = re.compile(
        r"^\s*(?:[-*]\s+)?\**(?P<key>file|line|message|rule)\**\s*:\s*\**\s*(?P<value>.*?)\s*$",
        re.IGNORECASE,
    )
    _SUMMARY_RE: Final[re.Pattern[str]] = re.compile(
        r"^\s*\**summary\**\s*:\s*\**\s*(?P<value>.+?)\s*$", re.IGNORECASE
    )

    def extract(self, text: str) -> DialectResult | None:
        items: list[dict[str, str]] = []
        summary = ""
        current: dict[str, str] | None = None
        for line in text.splitlines():
            header = self._HEADER_RE.match(line)
            if header is not None:
                current = {
                    "severity": header.group("severity"),
                    "title": header.group("title"),
                }
                items.append(current)
                continue
            if current is None:
                summary_match = self._SUMMARY_RE.match(line)
                if summary_match is not None and not summary:
                    summary = summary_match.group("value")
                continue
            field = self._FIELD_RE.match(line)
            if field is not None:
                value = field.group("value").strip("`").strip()
                current.setdefault(field.group("key").lower(), value)
        if not items:
            return None
        return DialectResult(items=tuple(items), summary=summary)


DIALECTS: Final[tuple[ResponseDialect, ...]] = (
    FencedJsonDialect(),
    EmbeddedJsonDialect(),
    MarkdownHeaderDialect(),
)
"""試行順のダイアレクト一覧。"""


# =============================================================================
# 指摘項目の検証
# =============================================================================


def _lookup(item: Mapping[str, Any], field: str) -> Any:
    for key in FIELD_ALIASES[field]:
        value = item.get(key)
        if value is not None and value != "":
            return value
    return None


def _coerce_line(value: Any) -> Any:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and value < 0:
        return None
    return value


def _coerce_confidence(value: Any) -> float | None:
    """範囲外・非数値の確信度は指摘ごと捨てず、未指定として扱う。"""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if 0.0 <= value <= 1.0:
        return float(value)
    return None


def build_finding(item: object, agent_name: str) -> Finding:
    """指摘項目1件を Finding に変換する。

    Raises:
        ValueError: item がオブジェクトでない場合、または
            severity / message の検証に失敗した場合（ValidationError を含む）。
    """
    if not isinstance(item, Mapping):
        raise ValueError(f"issue item must be an object, got {type(item).__name__}")
    rule_id = _lookup(item, "rule_id")
    return Finding(
        rule_id=str(rule_id) if rule_id is not None else None,
        severity=_lookup(item, "severity"),
        file=_lookup(item, "file"),
        line=_coerce_line(_lookup(item, "line")),
        message=_lookup(item, "message"),
        source_agent=agent_name,
        confidence=_coerce_confidence(_lookup(item, "confidence")),
    )


# =============================================================================
# AgentReport の構築
# =============================================================================


def is_service_error(*texts: str | None) -> bool:
    """いずれかのテキストがクォータ超過・認証エラーを示すか。"""
    return any(text and SERVICE_ERROR_PATTERN.search(text) for text in texts)


def failed_agent_report(task: AgentTask) -> AgentReport:
    """FAILED / TIMED_OUT のタスクから指摘なしの AgentReport を構築する。"""
    if task.status == TaskStatus.TIMED_OUT:
        kind = FailureKind.TIMEOUT
    elif is_service_error(task.error_message, task.raw_output):
        kind = FailureKind.QUOTA_OR_AUTH
    else:
        kind = FailureKind.INVOCATION
    return AgentReport(
        agent_name=task.name,
        parse_status=ParseStatus.FAILED,
        task_status=task.status,
        failure_kind=kind,
        error_message=task.error_message or f"Agent ended with status {task.status}",
        raw_output=task.raw_output,
    )


def _service_error_line(text: str) -> str | None:
    """クォータ超過・認証エラーを示す最初の行を返す。"""
    for line in text.splitlines():
        if SERVICE_ERROR_PATTERN.search(line):
            return line.strip()
    return None


def _unparsable_report(task: AgentTask, message: str) -> AgentReport:
    raw = task.raw_output
    kind = FailureKind.PARSE
    service_line = _service_error_line(raw) if raw else None
    if service_line is not None:
        kind = FailureKind.QUOTA_OR_AUTH
        message = f"Service error reported by agent: {service_line}"
    return AgentReport(
        agent_name=task.name,
        parse_status=ParseStatus.FAILED,
        task_status=task.status,
        failure_kind=kind,
        error_message=message,
        raw_output=raw,
    )


def _report_from_dialect(
    task: AgentTask, dialect: ResponseDialect, result: DialectResult
) -> AgentReport:
    findings: list[Finding] = []
    dropped = 0
    for item in result.items:
        try:
            findings.append(build_finding(item, task.name))
        except (ValidationError, ValueError) as exc:
            dropped += 1
            logger.debug("Agent '%s': dropped invalid issue item: %s", task.name, exc)

    degraded = dropped > 0
    return AgentReport(
        agent_name=task.name,
        findings=tuple(findings),
        summary=result.summary,
        parse_status=ParseStatus.DEGRADED if degraded else ParseStatus.OK,
        task_status=task.status,
        dialect=dialect.name,
        failure_kind=FailureKind.PARSE if degraded else None,
        error_message=(
            f"{dropped} issue item(s) failed validation" if degraded else None
        ),
        dropped_items=dropped,
        raw_output=task.raw_output,
    )


def parse_agent_output(
    task: AgentTask,
    dialects: tuple[ResponseDialect, ...] = DIALECTS,
) -> AgentReport:
    """AgentTask の生出力を解析し AgentReport を返す。

    どのダイアレクトでも解析できない場合は parse_status=FAILED・指摘なしの
    レポートを返し、生出力は運用者確認用に保持する。例外は送出しない。

    Args:
        task: 終了状態の AgentTask。
        dialects: 試行するダイアレクト（順序どおりに試行する）。

    Returns:
        エージェントレポート。
    """
    if task.is_failure:
        return failed_agent_report(task)

    raw = task.raw_output or ""
    if not raw.strip():
        return _unparsable_report(task, "Agent produced no output")

    for dialect in dialects:
        try:
            result = dialect.extract(raw)
        except Exception:
            logger.warning(
                "Dialect '%s' raised while parsing agent '%s'",
                dialect.name,
                task.name,
                exc_info=True,
            )
            continue
        if result is not None:
            return _report_from_dialect(task, dialect, result)

    logger.warning("Agent '%s': output matched no known response format", task.name)
    return _unparsable_report(task, "Output matched no known response format")
