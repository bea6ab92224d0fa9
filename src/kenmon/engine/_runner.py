"""AgentRunner — 単一エージェントの実行。

プロンプトを AgentInvoker に渡し、結果を終了状態の AgentTask に変換する。
呼び出しの失敗はこのエージェント内で完結させ、例外として外へ出さない。
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Self

from pydantic import ConfigDict, Field, SkipValidation, model_validator

from kenmon.agents.models import AgentDefinition
from kenmon.engine._invoker import (
    AgentInvocationError,
    AgentInvoker,
    build_invoker,
    compose_prompt,
)
from kenmon.models._base import KenmonBaseModel
from kenmon.models.agent_task import AgentTask, TaskStatus
from kenmon.models.config import KenmonConfig

logger = logging.getLogger(__name__)


class AgentExecutionContext(KenmonBaseModel):
    """単一エージェントの実行に必要な全情報。

    Attributes:
        task: PENDING 状態のタスク。
        prompt: 合成済みプロンプト。
        invoker: 呼び出しバックエンド。
        max_retries: 呼び出し失敗時の再試行回数（タイムアウトは再試行しない）。
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    task: AgentTask
    prompt: str = Field(min_length=1)
    invoker: SkipValidation[AgentInvoker]
    max_retries: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _validate_invoker(self) -> Self:
        if not isinstance(self.invoker, AgentInvoker):
            raise ValueError(
                f"invoker must implement AgentInvoker, got {type(self.invoker).__name__}"
            )
        return self

    @property
    def agent_name(self) -> str:
        return self.task.name


def build_execution_context(
    definition: AgentDefinition,
    diff_text: str,
    config: KenmonConfig,
    invoker: AgentInvoker | None = None,
) -> AgentExecutionContext:
    """エージェント定義・diff・設定から実行コンテキストを構築する。

    invoker が None の場合は設定から構築する。
    """
    return AgentExecutionContext(
        task=AgentTask(
            name=definition.name,
            checklist_ref=definition.checklist_ref,
            prompt_template_ref=definition.prompt_template_ref,
        ),
        prompt=compose_prompt(definition, diff_text),
        invoker=invoker if invoker is not None else build_invoker(config, definition.name),
        max_retries=config.max_retries,
    )


async def run_agent(
    context: AgentExecutionContext,
    *,
    on_start: Callable[[AgentTask], None] | None = None,
) -> AgentTask:
    """単一エージェントを実行し、終了状態の AgentTask を返す。

    呼び出し前に RUNNING のタスクを生成して on_start に渡し、
    終了状態はその RUNNING タスクからの遷移として生成する。
    キャンセル以外の例外は全て内部で捕捉する。

    例外ハンドリング:
        - TimeoutError → TIMED_OUT
        - AgentInvocationError → 再試行回数が残っていれば再試行、尽きたら FAILED
        - その他の例外 → FAILED

    Args:
        context: エージェント実行コンテキスト。
        on_start: RUNNING に遷移したタスクを受け取るコールバック。

    Returns:
        COMPLETED / FAILED / TIMED_OUT のいずれかの AgentTask。
    """
    start_time = time.monotonic()
    attempts = 0
    running = context.task.model_copy(update={"status": TaskStatus.RUNNING})
    if on_start is not None:
        on_start(running)

    def _finish(status: TaskStatus, **fields: object) -> AgentTask:
        return running.model_copy(
            update={
                "status": status,
                "elapsed_time": time.monotonic() - start_time,
                "attempts": attempts,
                **fields,
            }
        )

    while True:
        attempts += 1
        try:
            output = await context.invoker.invoke(context.prompt)
        except TimeoutError as exc:
            return _finish(
                TaskStatus.TIMED_OUT,
                error_message=str(exc) or "invocation timed out",
            )
        except AgentInvocationError as exc:
            if attempts <= context.max_retries:
                logger.info(
                    "Agent '%s' invocation failed (attempt %d), retrying: %s",
                    context.agent_name,
                    attempts,
                    exc,
                )
                continue
            logger.warning(
                "Agent '%s' invocation failed after %d attempt(s): %s",
                context.agent_name,
                attempts,
                exc,
            )
            return _finish(
                TaskStatus.FAILED, error_message=str(exc), raw_output=exc.output
            )
        except Exception as exc:
            logger.warning(
                "Agent '%s' failed with %s: %s",
                context.agent_name,
                type(exc).__name__,
                exc,
                exc_info=True,
            )
            return _finish(
                TaskStatus.FAILED, error_message=f"{type(exc).__name__}: {exc}"
            )

        return _finish(TaskStatus.COMPLETED, raw_output=output)
