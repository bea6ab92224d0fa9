"""RichProgressReporter — TTY 環境向け Rich Live テーブル進捗表示。"""

from __future__ import annotations

import logging
import sys

from rich.console import Console
from rich.live import Live
from rich.spinner import Spinner
from rich.table import Table
from rich.text import Text

from kenmon.models.agent_task import AgentTask, TaskStatus

logger = logging.getLogger(__name__)


class RichProgressReporter:
    """TTY 環境向け Rich Live テーブル進捗レポーター。

    テーブル列: Agent | Status
    行順序: エージェント名の辞書順。
    """

    def __init__(self, console: Console | None = None) -> None:
        self._console: Console = console or Console(file=sys.stderr)
        self._live: Live | None = None
        self.agents: dict[str, str] = {}

    def on_agent_pending(self, agent_name: str) -> None:
        self.agents[agent_name] = TaskStatus.PENDING.value
        self._refresh()

    def on_agent_start(self, agent_name: str) -> None:
        if agent_name in self.agents:
            self.agents[agent_name] = TaskStatus.RUNNING.value
            self._refresh()

    def on_agent_complete(self, task: AgentTask) -> None:
        if task.name in self.agents:
            self.agents[task.name] = _format_completion_status(task)
            self._refresh()

    def start(self) -> None:
        """Rich Live 表示を開始する。"""
        live = Live(
            self.build_table(),
            console=self._console,
            refresh_per_second=4,
        )
        live.__enter__()
        self._live = live

    def stop(self) -> None:
        """Rich Live 表示を停止する。"""
        if self._live is not None:
            try:
                self._live.__exit__(None, None, None)
            except Exception:
                logger.debug("Failed to stop live progress display", exc_info=True)
            self._live = None

    def build_table(self) -> Table:
        """現在の状態からテーブルを構築する。"""
        table = Table(title="Pre-commit Review")
        table.add_column("Agent")
        table.add_column("Status")
        for name in sorted(self.agents):
            table.add_row(name, _render_status(self.agents[name]))
        return table

    def _refresh(self) -> None:
        if self._live is not None:
            self._live.update(self.build_table())


def _format_completion_status(task: AgentTask) -> str:
    match task.status:
        case TaskStatus.COMPLETED:
            return "✓ completed"
        case TaskStatus.FAILED:
            return "✗ failed"
        case TaskStatus.TIMED_OUT:
            return "⏱ timed out"
        case _:
            raise ValueError(f"Task '{task.name}' is not finished: {task.status}")


def _render_status(status: str) -> Text | Spinner:
    """ステータス文字列を Rich レンダラブルに変換する。"""
    if status == TaskStatus.PENDING:
        return Text("⏳ pending", style="dim")
    if status == TaskStatus.RUNNING:
        return Spinner("dots", text="running", style="cyan")
    if status.startswith("✓"):
        return Text(status, style="green")
    if status.startswith(("✗", "⏱")):
        return Text(status, style="red")
    return Text(status)
