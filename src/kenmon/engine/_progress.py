"""ProgressReporter — stderr 進捗表示。

TTY 時は Rich Live テーブル、非 TTY 時はプレーンテキストで自動切替する。
進捗表示・警告は stderr に出力し、stdout はレポート専用とする。
"""

from __future__ import annotations

import sys
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from kenmon.agents.models import LoadError
from kenmon.engine._precheck import SensitiveMatch
from kenmon.models.agent_task import AgentTask, TaskStatus


# =============================================================================
# ProgressReporter Protocol
# =============================================================================


@runtime_checkable
class ProgressReporter(Protocol):
    """エージェント実行進捗を報告するプロトコル。"""

    def on_agent_pending(self, agent_name: str) -> None:
        """エージェントを pending 状態として登録する。"""
        ...

    def on_agent_start(self, agent_name: str) -> None:
        """エージェント実行開始を通知する。"""
        ...

    def on_agent_complete(self, task: AgentTask) -> None:
        """エージェント実行完了（終了状態の AgentTask）を通知する。"""
        ...

    def start(self) -> None:
        """進捗表示を開始する。"""
        ...

    def stop(self) -> None:
        """進捗表示を停止する。"""
        ...


# =============================================================================
# PlainProgressReporter
# =============================================================================


class PlainProgressReporter:
    """非 TTY 環境向けプレーンテキスト進捗レポーター。"""

    def on_agent_pending(self, agent_name: str) -> None:
        """プレーンテキストでは pending 表示しない。"""

    def on_agent_start(self, agent_name: str) -> None:
        report_agent_start(agent_name)

    def on_agent_complete(self, task: AgentTask) -> None:
        report_agent_complete(task)

    def start(self) -> None:
        """プレーンテキストでは開始処理なし。"""

    def stop(self) -> None:
        """プレーンテキストでは停止処理なし。"""


# =============================================================================
# ファクトリ関数
# =============================================================================


def create_progress_reporter() -> ProgressReporter:
    """stderr の TTY 状態に基づいて適切な ProgressReporter を生成する。"""
    if sys.stderr.isatty():
        from kenmon.engine._live_progress import RichProgressReporter

        return RichProgressReporter()
    return PlainProgressReporter()


def format_task_status(task: AgentTask) -> str:
    """終了状態の AgentTask を短いステータス文字列にする。

    出力フォーマット:
        完了: "completed ({elapsed}s)"
        失敗: "failed ({error_message})"
        タイムアウト: "timed out"
    """
    match task.status:
        case TaskStatus.COMPLETED:
            elapsed = f" ({task.elapsed_time:.1f}s)" if task.elapsed_time is not None else ""
            return f"completed{elapsed}"
        case TaskStatus.FAILED:
            return f"failed ({task.error_message or 'unknown error'})"
        case TaskStatus.TIMED_OUT:
            return "timed out"
        case _:
            return task.status.value


def report_agent_start(agent_name: str) -> None:
    """エージェント実行開始を stderr に表示する。"""
    print(f"Running agent: {agent_name}...", file=sys.stderr)


def report_agent_complete(task: AgentTask) -> None:
    """エージェント実行完了を stderr に表示する。"""
    print(f"Agent {task.name}: {format_task_status(task)}", file=sys.stderr)


def report_load_warnings(errors: Sequence[LoadError]) -> None:
    """エージェント読み込みエラーを stderr に警告表示する。

    出力フォーマット:
        "Warning: Failed to load agent '{source}': {message}"
    """
    for error in errors:
        print(
            f"Warning: Failed to load agent '{error.source}': {error.message}",
            file=sys.stderr,
        )


def report_sensitive_matches(matches: Sequence[SensitiveMatch]) -> None:
    """機密情報らしき記述の検出一覧を stderr に表示する。"""
    print(
        "Warning: Potentially sensitive data detected in staged changes:",
        file=sys.stderr,
    )
    for match in matches:
        location = match.file or "<unknown file>"
        print(
            f"  - {match.kind} ({location}, diff line {match.diff_line})",
            file=sys.stderr,
        )
