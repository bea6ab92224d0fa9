"""設定リゾルバー。

6層の設定ソースを項目単位でマージし、KenmonConfig を構築する。
環境変数はこのモジュールでのみ読み取り、下流のコンポーネントには
解決済みの KenmonConfig を明示的に渡す。
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Final

from kenmon.config._loader import load_pyproject_config, load_toml_config
from kenmon.config._locator import (
    find_config_file,
    find_pyproject_toml,
    get_user_config_path,
)
from kenmon.models.config import KenmonConfig

_AGENTS_KEY: str = "agents"

_TRUE_VALUES: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})


def _parse_bool(name: str, value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError(
        f"Environment variable {name}={value!r} is not a boolean "
        "(use true/false, yes/no, 1/0 or on/off)"
    )


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise ValueError(
            f"Environment variable {name}={value!r} is not an integer"
        ) from None


def _parse_str(name: str, value: str) -> str:
    return value.strip()


ENV_OVERRIDES: Final[Mapping[str, tuple[str, Callable[[str, str], object]]]] = (
    MappingProxyType(
        {
            "AI_REVIEW_ENABLED": ("enabled", _parse_bool),
            "SKIP_SENSITIVE_CHECK": ("skip_sensitive_check", _parse_bool),
            "KENMON_MODEL": ("model", _parse_str),
            "KENMON_TIMEOUT": ("timeout", _parse_int),
            "KENMON_MAX_DIFF_SIZE": ("max_diff_size", _parse_int),
        }
    )
)
"""環境変数名 → (設定キー, パーサー) の対応表。"""


def _merge_agents(
    base: dict[str, object] | None,
    override: dict[str, object],
) -> dict[str, object]:
    """agents セクションをエージェント名→フィールド単位でマージする。

    Raises:
        TypeError: エージェント設定が dict でない場合。
    """
    for agent_name, agent_config in override.items():
        if not isinstance(agent_config, dict):
            msg = (
                f"Agent config for '{agent_name}' must be a dict, "
                f"got {type(agent_config).__name__}"
            )
            raise TypeError(msg)
    merged: dict[str, object] = dict(base) if base is not None else {}
    for agent_name, agent_config in override.items():
        existing = merged.get(agent_name)
        if isinstance(existing, dict):
            merged[agent_name] = {**existing, **agent_config}
        else:
            merged[agent_name] = dict(agent_config)
    return merged


def merge_config_layers(
    *layers: dict[str, object] | None,
) -> dict[str, object]:
    """複数の設定レイヤーを項目単位でマージする。

    後のレイヤーが先のレイヤーを上書きする。agents セクションは
    エージェント名→フィールド単位でマージする。None のレイヤーはスキップされる。

    Args:
        layers: マージ対象の設定辞書。低優先度から高優先度の順。

    Returns:
        マージ済みの設定辞書。

    Raises:
        TypeError: agents セクションが dict でない場合。
    """
    result: dict[str, object] = {}
    for layer in layers:
        if layer is None:
            continue
        for key, value in layer.items():
            if key == _AGENTS_KEY:
                if not isinstance(value, dict):
                    msg = f"'{_AGENTS_KEY}' must be a dict, got {type(value).__name__}"
                    raise TypeError(msg)
                result[_AGENTS_KEY] = _merge_agents(
                    result.get(_AGENTS_KEY, None),  # type: ignore[arg-type]
                    value,
                )
            else:
                result[key] = value
    return result


def filter_cli_overrides(cli_options: dict[str, object]) -> dict[str, object]:
    """CLI オプション辞書から None 値（未指定）を除外する。"""
    return {k: v for k, v in cli_options.items() if v is not None}


def load_env_overrides(environ: Mapping[str, str]) -> dict[str, object]:
    """環境変数から設定レイヤーを構築する。

    空文字列の環境変数は未設定として扱う。

    Args:
        environ: 環境変数のマッピング（通常は os.environ）。

    Returns:
        設定キー → 値の辞書。

    Raises:
        ValueError: 値を解釈できない場合。
    """
    layer: dict[str, object] = {}
    for env_name, (key, parse) in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None or not raw.strip():
            continue
        layer[key] = parse(env_name, raw)
    return layer


def resolve_config(
    start_dir: Path | None = None,
    cli_overrides: dict[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> KenmonConfig:
    """6層の設定ソースを解決し KenmonConfig を構築する。

    優先順位: CLI > 環境変数 > .kenmon/config.toml > pyproject.toml [tool.kenmon]
              > ~/.config/kenmon/config.toml > デフォルト値

    設定ファイルが存在しない場合は該当レイヤーをスキップする。

    Args:
        start_dir: 探索開始ディレクトリ。None の場合はカレントディレクトリ。
        cli_overrides: CLI オプションの辞書。None 値は未指定扱い。
        environ: 環境変数のマッピング。None の場合は os.environ。

    Returns:
        解決済みの KenmonConfig インスタンス。

    Raises:
        pydantic.ValidationError: マージ後の設定が不正な場合。
        ConfigFileError: 設定ファイルの TOML 構文・構造が不正な場合。
        ValueError: 環境変数の値が不正な場合。
        TypeError: agents セクションの構造が不正な場合。
        PermissionError: 設定ファイルの読み取り権限がない場合。
    """
    effective_start = start_dir if start_dir is not None else Path.cwd()

    user_layer: dict[str, object] | None = None
    try:
        user_layer = load_toml_config(get_user_config_path())
    except FileNotFoundError:
        pass

    pyproject_layer: dict[str, object] | None = None
    pyproject_path = find_pyproject_toml(effective_start)
    if pyproject_path is not None:
        pyproject_layer = load_pyproject_config(pyproject_path)

    config_layer: dict[str, object] | None = None
    config_path = find_config_file(effective_start)
    if config_path is not None:
        # .kenmon/ はあるが config.toml が未作成のケース
        try:
            config_layer = load_toml_config(config_path)
        except FileNotFoundError:
            pass

    env_layer = load_env_overrides(os.environ if environ is None else environ)

    cli_layer: dict[str, object] | None = None
    if cli_overrides is not None:
        cli_layer = filter_cli_overrides(cli_overrides)

    merged = merge_config_layers(
        user_layer, pyproject_layer, config_layer, env_layer, cli_layer
    )
    return KenmonConfig(**merged)  # type: ignore[arg-type]
