"""モデルリゾルバー — プレフィックスベースのプロバイダー解決。

モデル文字列のプレフィックスに基づき、pydantic-ai Agent に渡す model 引数を解決する。
- claudecode: ClaudeCodeModel インスタンスを生成して返す（claude CLI が必要）
- anthropic: モデル文字列をそのまま返す（ANTHROPIC_API_KEY が必要）
"""

from __future__ import annotations

import os
import shutil
from typing import Final

from claudecode_model import ClaudeCodeModel
from pydantic_ai.models import Model

_ANTHROPIC_PREFIX: Final[str] = "anthropic:"
_CLAUDECODE_PREFIX: Final[str] = "claudecode:"

CLAUDE_CLI_NAME: Final[str] = "claude"
"""claudecode バックエンドが呼び出す CLI 実行ファイル名。"""


def _bare_name(model: str, prefix: str) -> str:
    bare_name = model.removeprefix(prefix)
    if not bare_name:
        raise ValueError(
            f"Model name cannot be empty after prefix in '{model}'. "
            f"Specify a model name, e.g. '{prefix}claude-sonnet-4-5'."
        )
    return bare_name


def resolve_model(model: str) -> str | Model:
    """モデル文字列のプレフィックスに基づきプロバイダーを解決する。

    レビューエージェントは diff をプロンプトに埋め込むため、
    claudecode バックエンドでは CLI ビルトインツールを全て無効化する。

    Args:
        model: プレフィックス付きモデル名（例: ``"claudecode:claude-sonnet-4-5"``）。

    Returns:
        claudecode の場合は ClaudeCodeModel、anthropic の場合はモデル文字列。

    Raises:
        ValueError: プレフィックス後のモデル名が空の場合、
            anthropic で ANTHROPIC_API_KEY が未設定の場合、
            または未知のプレフィックスの場合。
    """
    if model.startswith(_CLAUDECODE_PREFIX):
        return ClaudeCodeModel(
            model_name=_bare_name(model, _CLAUDECODE_PREFIX),
            allowed_tools=[],
        )

    if model.startswith(_ANTHROPIC_PREFIX):
        _bare_name(model, _ANTHROPIC_PREFIX)
        if not os.getenv("ANTHROPIC_API_KEY"):
            raise ValueError(
                "ANTHROPIC_API_KEY environment variable is required when using "
                "model prefix 'anthropic:'. Set it with: export ANTHROPIC_API_KEY='your-key'"
            )
        return model

    raise ValueError(
        f"Unknown model prefix in '{model}'. "
        "Use 'claudecode:model-name' or 'anthropic:model-name'."
    )


def check_model_available(model: str) -> str | None:
    """モデルバックエンドが到達可能かを確認する。

    Returns:
        到達不能な理由。到達可能な場合は None。
    """
    if model.startswith(_CLAUDECODE_PREFIX):
        try:
            _bare_name(model, _CLAUDECODE_PREFIX)
        except ValueError as exc:
            return str(exc)
        if shutil.which(CLAUDE_CLI_NAME) is None:
            return (
                f"'{CLAUDE_CLI_NAME}' CLI not found in PATH "
                f"(required by model '{model}')"
            )
        return None
    try:
        resolve_model(model)
    except ValueError as exc:
        return str(exc)
    return None
