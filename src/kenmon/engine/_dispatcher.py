"""AgentDispatcher — 全エージェントの並列実行と共有デッドライン。

各エージェントを独立した asyncio タスクとして起動し、
asyncio.wait(timeout=...) で「全完了またはデッドライン経過」まで待機する。
デッドライン経過時に未完了のタスクはキャンセルし TIMED_OUT として記録する。
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence

from kenmon.engine._progress import ProgressReporter
from kenmon.engine._runner import AgentExecutionContext, run_agent
from kenmon.models._base import KenmonBaseModel
from kenmon.models.agent_task import AgentTask, TaskStatus

logger = logging.getLogger(__name__)

OutputSink = Callable[[AgentTask], None]
"""COMPLETED タスクの生出力を永続化する関数。"""


class DispatchResult(KenmonBaseModel):
    """ディスパッチ結果。

    Attributes:
        tasks: 終了状態の AgentTask（エージェント名順）。
    """

    tasks: tuple[AgentTask, ...] = ()

    @property
    def all_failed(self) -> bool:
        """タスクが1件以上あり、その全てが FAILED / TIMED_OUT か。"""
        return bool(self.tasks) and all(t.is_failure for t in self.tasks)

    @property
    def completed(self) -> tuple[AgentTask, ...]:
        return tuple(t for t in self.tasks if t.status == TaskStatus.COMPLETED)


def _notify(callback: Callable[..., None], *args: object) -> None:
    """進捗報告を呼び出す。報告の失敗はレビューに影響させない。"""
    try:
        callback(*args)
    except Exception:
        logger.debug("Progress reporter failed", exc_info=True)


def _persist(sink: OutputSink, task: AgentTask) -> None:
    try:
        sink(task)
    except Exception:
        logger.warning(
            "Failed to persist raw output of agent '%s'", task.name, exc_info=True
        )


async def dispatch_agents(
    contexts: Sequence[AgentExecutionContext],
    *,
    deadline_seconds: float,
    reporter: ProgressReporter | None = None,
    sink: OutputSink | None = None,
) -> DispatchResult:
    """全エージェントを並列実行し、共有デッドラインで打ち切る。

    1エージェントの例外・非ゼロ終了・タイムアウトは他のエージェントの
    実行と出力回収に影響しない。呼び出し元がキャンセルされた場合は
    全タスクをキャンセルしてから CancelledError を再送出する。

    Args:
        contexts: エージェントごとの実行コンテキスト。
        deadline_seconds: 全エージェント共通のデッドライン（秒）。
        reporter: 進捗レポーター。None の場合は報告しない。
        sink: COMPLETED タスクの生出力の保存先。解析の成否とは独立に呼ばれる。

    Returns:
        エージェント名順に並んだ終了状態のタスク。

    Raises:
        ValueError: deadline_seconds が正でない場合。
    """
    if deadline_seconds <= 0:
        raise ValueError(f"deadline_seconds must be positive, got {deadline_seconds}")
    if not contexts:
        return DispatchResult()

    if reporter is not None:
        for ctx in contexts:
            _notify(reporter.on_agent_pending, ctx.agent_name)

    started: dict[str, AgentTask] = {}

    def _on_start(task: AgentTask) -> None:
        started[task.name] = task
        if reporter is not None:
            _notify(reporter.on_agent_start, task.name)

    async def _run(ctx: AgentExecutionContext) -> AgentTask:
        task = await run_agent(ctx, on_start=_on_start)
        if reporter is not None:
            _notify(reporter.on_agent_complete, task)
        return task

    start_time = time.monotonic()
    running: dict[asyncio.Task[AgentTask], AgentExecutionContext] = {
        asyncio.create_task(_run(ctx), name=f"kenmon-agent-{ctx.agent_name}"): ctx
        for ctx in contexts
    }

    try:
        _, pending = await asyncio.wait(running, timeout=deadline_seconds)
    except asyncio.CancelledError:
        for aio_task in running:
            aio_task.cancel()
        await asyncio.gather(*running, return_exceptions=True)
        raise

    for aio_task in pending:
        aio_task.cancel()
    if pending:
        # キャンセル完了まで待ち、サブプロセスの kill を確実にする
        await asyncio.gather(*pending, return_exceptions=True)

    elapsed = time.monotonic() - start_time
    finished: list[AgentTask] = []
    for aio_task, ctx in running.items():
        if aio_task in pending:
            logger.warning(
                "Agent '%s' did not finish within %ss", ctx.agent_name, deadline_seconds
            )
            task = started.get(ctx.agent_name, ctx.task).model_copy(
                update={
                    "status": TaskStatus.TIMED_OUT,
                    "error_message": (
                        f"Exceeded shared deadline of {deadline_seconds}s"
                    ),
                    "elapsed_time": elapsed,
                }
            )
            if reporter is not None:
                _notify(reporter.on_agent_complete, task)
        elif aio_task.cancelled() or aio_task.exception() is not None:
            # run_agent はキャンセル以外の例外を内部で捕捉する
            error = "cancelled" if aio_task.cancelled() else repr(aio_task.exception())
            logger.warning("Agent '%s' task ended abnormally: %s", ctx.agent_name, error)
            task = ctx.task.model_copy(
                update={"status": TaskStatus.FAILED, "error_message": error}
            )
        else:
            task = aio_task.result()
            if sink is not None and task.status == TaskStatus.COMPLETED:
                _persist(sink, task)
        finished.append(task)

    finished.sort(key=lambda t: t.name)
    return DispatchResult(tasks=tuple(finished))
