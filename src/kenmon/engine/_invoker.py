"""AgentInvoker — プロンプト合成と外部レビュー能力の呼び出し。

レビューの知能そのものは外部にあり、ここでは ``(prompt) -> raw text`` の
差し替え可能なアダプタとして扱う。バックエンドは2種類:

- ModelInvoker: pydantic-ai Agent 経由で LLM を呼び出す。
- CommandInvoker: copilot 等の外部 CLI をサブプロセスとして呼び出す。
"""

from __future__ import annotations

import asyncio
import re
import shutil
from contextlib import suppress
from typing import Final, Protocol, assert_never, runtime_checkable

import anyio
from claudecode_model import ClaudeCodeModelSettings
from claudecode_model.exceptions import CLIExecutionError
from pydantic_ai import Agent
from pydantic_ai.exceptions import UsageLimitExceeded
from pydantic_ai.usage import UsageLimits

from kenmon.agents.models import (
    CHECKLIST_PLACEHOLDER,
    DIFF_PLACEHOLDER,
    AgentDefinition,
)
from kenmon.engine._cancel_scope_guard import run_agent_safe
from kenmon.engine._model_resolver import check_model_available, resolve_model
from kenmon.models.config import InvokerKind, KenmonConfig

OUTPUT_INSTRUCTION: Final[str] = "CRITICAL: Output ONLY valid JSON."
"""全プロンプト末尾に付加する出力形式の指示。"""

SYSTEM_PROMPT: Final[str] = (
    "You are a code reviewer in a pre-commit gate. "
    "Follow the output format requested in the prompt exactly."
)

PROMPT_ARG: Final[str] = "{prompt}"
MODEL_ARG: Final[str] = "{model}"

_PLACEHOLDER_RE: Final[re.Pattern[str]] = re.compile(
    re.escape(CHECKLIST_PLACEHOLDER) + "|" + re.escape(DIFF_PLACEHOLDER)
)


class MissingCapabilityError(Exception):
    """外部レビュー能力に到達できない。ディスパッチ前に検出される。"""


class AgentInvocationError(Exception):
    """単一エージェント呼び出しの失敗（非ゼロ終了・API エラー等）。

    Attributes:
        exit_code: 外部プロセスの終了コード（該当する場合）。
        output: 失敗時に得られた出力（stdout / stderr）。
    """

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        output: str | None = None,
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output


def compose_prompt(definition: AgentDefinition, diff_text: str) -> str:
    """エージェント定義と diff からプロンプトを合成する。

    {checklist} と {diff} を1パスで字句置換する。差し込んだ本文中の
    プレースホルダー文字列は再展開しない。
    """
    values = {
        CHECKLIST_PLACEHOLDER: definition.checklist,
        DIFF_PLACEHOLDER: diff_text,
    }
    body = _PLACEHOLDER_RE.sub(
        lambda m: values[m.group(0)], definition.prompt_template
    )
    return f"{body.rstrip()}\n\n{OUTPUT_INSTRUCTION}"


@runtime_checkable
class AgentInvoker(Protocol):
    """外部レビュー能力の呼び出しプロトコル。"""

    def check_available(self) -> str | None:
        """到達不能な場合はその理由を、到達可能な場合は None を返す。"""
        ...

    async def invoke(self, prompt: str) -> str:
        """プロンプトを送信し、生の応答テキストを返す。

        Raises:
            AgentInvocationError: 呼び出しが失敗した場合。
            TimeoutError: 呼び出しがタイムアウトした場合。
        """
        ...


def ensure_available(invoker: AgentInvoker) -> None:
    """呼び出し先が到達不能な場合は MissingCapabilityError を送出する。"""
    reason = invoker.check_available()
    if reason is not None:
        raise MissingCapabilityError(reason)


class ModelInvoker:
    """pydantic-ai Agent 経由で LLM を呼び出すバックエンド。

    モデル文字列は解釈せず resolve_model にそのまま渡す。
    """

    def __init__(self, model: str, *, max_turns: int, timeout_seconds: float) -> None:
        self.model = model
        self._max_turns = max_turns
        self._timeout_seconds = timeout_seconds

    def check_available(self) -> str | None:
        return check_model_available(self.model)

    async def invoke(self, prompt: str) -> str:
        try:
            resolved = resolve_model(self.model)
        except ValueError as exc:
            raise AgentInvocationError(str(exc)) from exc

        agent = Agent(model=resolved, output_type=str, system_prompt=SYSTEM_PROMPT)
        try:
            with anyio.fail_after(self._timeout_seconds):
                result = await run_agent_safe(
                    agent,
                    user_prompt=prompt,
                    usage_limits=UsageLimits(request_limit=self._max_turns),
                    model_settings=ClaudeCodeModelSettings(max_turns=self._max_turns),
                )
        except CLIExecutionError as exc:
            if exc.error_type == "timeout":
                raise TimeoutError(str(exc)) from exc
            raise AgentInvocationError(
                str(exc), exit_code=exc.exit_code, output=exc.stderr
            ) from exc
        except UsageLimitExceeded as exc:
            raise AgentInvocationError(
                f"Model exceeded {self._max_turns} request(s): {exc}"
            ) from exc
        return result.output


class CommandInvoker:
    """外部 CLI をサブプロセスとして呼び出すバックエンド。

    argv テンプレート中の ``{prompt}`` / ``{model}`` を置換する。
    ``{prompt}`` を含まないテンプレートでは、プロンプトを stdin で渡す。
    キャンセル時はサブプロセスを kill する。
    """

    def __init__(self, command: tuple[str, ...], *, model: str = "") -> None:
        if not command:
            raise ValueError("command must not be empty")
        self.command = command
        self.model = model

    def check_available(self) -> str | None:
        if shutil.which(self.command[0]) is None:
            return f"Command not found in PATH: {self.command[0]}"
        return None

    def build_argv(self, prompt: str) -> list[str]:
        """argv テンプレートを展開する。{model} を先に置換し、プロンプト本文は再展開しない。"""
        return [
            arg.replace(MODEL_ARG, self.model).replace(PROMPT_ARG, prompt)
            for arg in self.command
        ]

    @property
    def uses_stdin(self) -> bool:
        """プロンプトを stdin で渡すか。"""
        return not any(PROMPT_ARG in arg for arg in self.command)

    async def invoke(self, prompt: str) -> str:
        argv = self.build_argv(prompt)
        stdin_data = prompt.encode() if self.uses_stdin else None
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=(
                    asyncio.subprocess.PIPE
                    if stdin_data is not None
                    else asyncio.subprocess.DEVNULL
                ),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise AgentInvocationError(f"Command not found: {argv[0]}") from exc

        try:
            stdout, stderr = await proc.communicate(stdin_data)
        except BaseException:
            with suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise

        output = stdout.decode(errors="replace")
        if proc.returncode != 0:
            stderr_text = stderr.decode(errors="replace").strip()
            raise AgentInvocationError(
                f"{argv[0]} exited with code {proc.returncode}: {stderr_text}",
                exit_code=proc.returncode,
                output="\n".join(part for part in (output, stderr_text) if part),
            )
        return output


def build_invoker(config: KenmonConfig, agent_name: str) -> AgentInvoker:
    """設定に従いエージェント用の AgentInvoker を構築する。"""
    model = config.model_for(agent_name)
    match config.invoker:
        case InvokerKind.MODEL:
            return ModelInvoker(
                model,
                max_turns=config.max_turns,
                timeout_seconds=config.timeout,
            )
        case InvokerKind.COMMAND:
            return CommandInvoker(config.command, model=model)
        case _:
            assert_never(config.invoker)
