"""設定ファイル・プロジェクトディレクトリの探索。

.kenmon/ と pyproject.toml はカレントディレクトリから親方向へ遡って探索する。
ユーザーグローバル設定は ~/.config/kenmon/config.toml 固定。
"""

from __future__ import annotations

import stat as stat_module
from collections.abc import Callable
from pathlib import Path
from typing import Final

PROJECT_DIR_NAME: Final[str] = ".kenmon"
_CONFIG_FILE_NAME: Final[str] = "config.toml"
_PYPROJECT_FILE_NAME: Final[str] = "pyproject.toml"


def _find_ancestor(
    start: Path,
    target_name: str,
    check: Callable[[int], bool],
) -> Path | None:
    """start から親方向に target_name を探索し、最初にマッチした候補パスを返す。

    Args:
        start: 探索開始ディレクトリ。
        target_name: 探索対象の名前。
        check: stat.st_mode に適用する種別チェック関数（stat.S_ISDIR 等）。

    Raises:
        OSError: 探索パス上のアクセス権限エラー等。
    """
    current = start.resolve()
    while True:
        candidate = current / target_name
        try:
            st = candidate.stat()
        except FileNotFoundError:
            pass
        else:
            if check(st.st_mode):
                return candidate
        if current.parent == current:
            return None
        current = current.parent


def find_project_root(start: Path) -> Path | None:
    """.kenmon/ ディレクトリを含む最も近い祖先ディレクトリを返す。見つからなければ None。"""
    result = _find_ancestor(start, PROJECT_DIR_NAME, stat_module.S_ISDIR)
    return result.parent if result is not None else None


def find_config_file(start: Path) -> Path | None:
    """.kenmon/config.toml のパスを構築する（存在チェックは行わない）。"""
    project_root = find_project_root(start)
    if project_root is None:
        return None
    return project_root / PROJECT_DIR_NAME / _CONFIG_FILE_NAME


def find_pyproject_toml(start: Path) -> Path | None:
    """start から親方向に pyproject.toml を探索する。"""
    return _find_ancestor(start, _PYPROJECT_FILE_NAME, stat_module.S_ISREG)


def get_user_config_path() -> Path:
    """ユーザーグローバル設定ファイルのパスを返す（存在チェックは行わない）。

    Raises:
        RuntimeError: ホームディレクトリを特定できない場合。
    """
    return Path.home() / ".config" / "kenmon" / _CONFIG_FILE_NAME
