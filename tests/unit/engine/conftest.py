"""エンジンテスト共通ヘルパー。"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from kenmon.agents.models import AgentDefinition
from kenmon.engine._runner import AgentExecutionContext
from kenmon.models.agent_task import AgentTask, TaskStatus

ISSUES_JSON = (
    '{"issues": [{"severity": "BLOCK", "file": "src/Db.java", "line": 4, '
    '"message": "Hardcoded password", "rule_id": "SEC-001"}], '
    '"summary": "1 issue"}'
)
EMPTY_JSON = '{"issues": [], "summary": "clean"}'


class FakeInvoker:
    """応答・例外を順番に返すテスト用 AgentInvoker。

    responses の各要素は str（応答）か BaseException（送出）。
    最後の要素は以降の呼び出しでも繰り返し使われる。
    """

    def __init__(
        self,
        responses: Sequence[str | BaseException] = (EMPTY_JSON,),
        *,
        delay: float = 0.0,
        unavailable_reason: str | None = None,
    ) -> None:
        self.responses = list(responses)
        self.delay = delay
        self.unavailable_reason = unavailable_reason
        self.prompts: list[str] = []

    def check_available(self) -> str | None:
        return self.unavailable_reason

    async def invoke(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        index = min(len(self.prompts), len(self.responses)) - 1
        response = self.responses[index]
        if isinstance(response, BaseException):
            raise response
        return response

    @property
    def calls(self) -> int:
        return len(self.prompts)


def make_definition(name: str = "security") -> AgentDefinition:
    return AgentDefinition(
        name=name,
        checklist_ref=f"{name}/checklist.yaml",
        prompt_template_ref=f"{name}/prompt.txt",
        checklist="- rule",
        prompt_template="{checklist}\n{diff}",
    )


def make_task(
    name: str = "security",
    status: TaskStatus = TaskStatus.COMPLETED,
    raw_output: str | None = None,
    error_message: str | None = None,
) -> AgentTask:
    return AgentTask(
        name=name,
        checklist_ref=f"{name}/checklist.yaml",
        prompt_template_ref=f"{name}/prompt.txt",
        status=status,
        raw_output=raw_output,
        error_message=error_message,
    )


def make_context(
    name: str = "security",
    invoker: FakeInvoker | None = None,
    max_retries: int = 0,
) -> AgentExecutionContext:
    return AgentExecutionContext(
        task=make_task(name, status=TaskStatus.PENDING),
        prompt="Review this diff.",
        invoker=invoker if invoker is not None else FakeInvoker(),
        max_retries=max_retries,
    )
