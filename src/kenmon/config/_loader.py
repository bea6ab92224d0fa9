"""TOML 設定ファイルローダー。

~/.config/kenmon/config.toml・.kenmon/config.toml のパースと
pyproject.toml の [tool.kenmon] セクションの取り出しを行う。
値のバリデーションは _resolver.py が担当する。

構文エラー・構造エラーは読み込んだファイルのパスを含む ConfigFileError として送出し、
CLI はそのまま INPUT_ERROR として表示する。存在しない・読めないファイルの
OSError はそのまま送出する。
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Final

_PYPROJECT_SECTION: Final[tuple[str, str]] = ("tool", "kenmon")


class ConfigFileError(ValueError):
    """設定ファイルの内容が TOML として、または kenmon の設定として読めない。

    Attributes:
        path: 問題のあるファイルのパス。
    """

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path


def _read_toml(path: Path) -> dict[str, object]:
    with path.open("rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigFileError(path, f"invalid TOML ({exc})") from exc


def load_toml_config(path: Path) -> dict[str, object]:
    """kenmon の設定ファイルを読み込み辞書として返す。

    Raises:
        ConfigFileError: TOML 構文エラーの場合。
        FileNotFoundError: ファイルが存在しない場合。
        PermissionError: 読み取り権限がない場合。
    """
    return _read_toml(path)


def load_pyproject_config(path: Path) -> dict[str, object] | None:
    """pyproject.toml から [tool.kenmon] セクションを取り出す。

    Returns:
        セクションの辞書。pyproject.toml に [tool.kenmon] がなければ None。

    Raises:
        ConfigFileError: TOML 構文エラー、または [tool.kenmon] がテーブルでない場合。
        FileNotFoundError: ファイルが存在しない場合。
        PermissionError: 読み取り権限がない場合。
    """
    data = _read_toml(path)
    tool = data.get(_PYPROJECT_SECTION[0])
    if not isinstance(tool, dict) or _PYPROJECT_SECTION[1] not in tool:
        return None
    section = tool[_PYPROJECT_SECTION[1]]
    if not isinstance(section, dict):
        raise ConfigFileError(
            path, f"[tool.kenmon] must be a table, got {type(section).__name__}"
        )
    return section
