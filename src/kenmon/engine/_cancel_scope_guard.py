"""CancelScope 衝突ガード — ModelInvoker から使う agent 実行ラッパー。

claudecode バックエンドでは claude-agent-sdk 内部のタスクグループと
pydantic-ai の CancelScope が衝突し、``agent.run()`` が RuntimeError で
終わることがある。agent.iter() で結果を先に確保し、衝突を次のように扱う:

- 結果確保後の衝突: 確保済みの結果を返す（レビュー結果を捨てない）。
- 結果未確保の衝突: SDK 側タイムアウトの上書きとみなし TimeoutError を送出する。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pydantic_ai import Agent
    from pydantic_ai.run import AgentRunResult

logger = logging.getLogger(__name__)


def is_cancel_scope_error(error: BaseException) -> bool:
    """anyio CancelScope 衝突による RuntimeError かを判定する。"""
    return isinstance(error, RuntimeError) and "cancel scope" in str(error).lower()


async def run_agent_safe(
    agent: Agent[Any, Any],
    /,
    **run_kwargs: Any,
) -> AgentRunResult[Any]:
    """CancelScope 衝突を許容して agent を最後まで実行する。

    Args:
        agent: pydantic-ai Agent。
        **run_kwargs: agent.iter() に渡す引数（user_prompt, usage_limits 等）。

    Raises:
        TimeoutError: 結果を得る前に CancelScope 衝突が起きた場合。
        RuntimeError: CancelScope 以外の RuntimeError、または結果が得られなかった場合。
    """
    result: AgentRunResult[Any] | None = None

    try:
        async with agent.iter(**run_kwargs) as agent_run:
            async for _node in agent_run:
                pass
            result = agent_run.result
    except RuntimeError as exc:
        if not is_cancel_scope_error(exc):
            raise
        if result is None:
            logger.warning(
                "Cancel scope conflict before the agent produced a result: %s", exc
            )
            raise TimeoutError(
                "Agent run interrupted by a cancel scope conflict"
            ) from exc
        logger.warning("Cancel scope conflict after the agent finished: %s", exc)

    if result is None:
        raise RuntimeError("Agent run did not produce a result")
    return result
