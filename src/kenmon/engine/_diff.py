"""DiffExtractor — ステージ済み差分の取得と上限バイト数での切り詰め。

git diff --cached で追加・コピー・変更されたファイルを列挙し、
file_patterns（fnmatch、basename 照合）で絞り込んだ差分を取得する。
切り詰めは先頭 N バイトで行い、行境界は考慮しない。
"""

from __future__ import annotations

import asyncio
import fnmatch
import os
from collections.abc import Iterable
from os.path import basename
from typing import Final

from pydantic import Field

from kenmon.models._base import KenmonBaseModel

_GIT_TIMEOUT_SECONDS: Final[int] = 60
"""git サブプロセスのタイムアウト秒数。"""


class DiffExtractionError(Exception):
    """差分取得の失敗。git コマンドの失敗・未検出・タイムアウトを表す。"""


class EmptyDiffError(Exception):
    """レビュー対象の差分が存在しない。

    エラーではなく「レビュー対象なし」を呼び出し元に伝えるシグナル。
    """


class BoundedDiff(KenmonBaseModel):
    """上限バイト数で切り詰め済みの差分。

    Attributes:
        text: エージェントに渡す diff テキスト。
        files: 差分に含まれるファイルパス。
        original_size: 切り詰め前のバイト数。
        size: 切り詰め後のバイト数。
    """

    text: str
    files: tuple[str, ...]
    original_size: int = Field(ge=0)
    size: int = Field(ge=0)

    @property
    def truncated(self) -> bool:
        """切り詰めが発生したか。"""
        return self.size < self.original_size


async def _run_git(*args: str) -> bytes:
    """git コマンドを非同期で実行し、stdout をバイト列で返す。

    Raises:
        DiffExtractionError: コマンド失敗、未検出、タイムアウト時。
    """
    cmd_display = " ".join(("git", *args))
    try:
        proc = await asyncio.create_subprocess_exec(
            "git",
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise DiffExtractionError(
            "Command not found: git. Ensure git is installed and available in PATH."
        ) from exc

    try:
        stdout, stderr = await asyncio.wait_for(
            proc.communicate(), timeout=_GIT_TIMEOUT_SECONDS
        )
    except TimeoutError as exc:
        proc.kill()
        await proc.wait()
        raise DiffExtractionError(
            f"Command timed out after {_GIT_TIMEOUT_SECONDS}s: {cmd_display}"
        ) from exc
    except BaseException:
        proc.kill()
        await proc.wait()
        raise

    if proc.returncode != 0:
        stderr_text = stderr.decode(errors="replace").strip()
        raise DiffExtractionError(f"Command failed ({cmd_display}): {stderr_text}")
    return stdout


async def list_staged_files() -> list[str]:
    """ステージ済みの追加・コピー・変更ファイルを列挙する。

    Raises:
        DiffExtractionError: git コマンドの失敗時。
    """
    # -z: 非 ASCII パスを core.quotePath で引用符付きにさせない
    output = await _run_git(
        "diff", "--cached", "--name-only", "-z", "--diff-filter=ACM"
    )
    return [os.fsdecode(name) for name in output.split(b"\0") if name]


def filter_paths(paths: Iterable[str], file_patterns: tuple[str, ...]) -> list[str]:
    """basename が file_patterns のいずれかに一致するパスのみを残す。

    パターンが空の場合は全パスを返す。
    """
    if not file_patterns:
        return list(paths)
    return [
        path
        for path in paths
        if any(fnmatch.fnmatch(basename(path), p) for p in file_patterns)
    ]


def truncate_diff(diff: bytes, max_diff_size: int) -> bytes:
    """diff を先頭 max_diff_size バイトに切り詰める。

    上限以下の場合はそのまま返す。同じ入力に対して常に同じ結果を返す。

    Raises:
        ValueError: max_diff_size が正でない場合。
    """
    if max_diff_size <= 0:
        raise ValueError(f"max_diff_size must be positive, got {max_diff_size}")
    return diff[:max_diff_size]


async def extract_diff(paths: list[str], max_diff_size: int) -> BoundedDiff:
    """指定ファイルのステージ済み差分を取得し、上限バイト数で切り詰める。

    Args:
        paths: 呼び出し元で絞り込み済みのファイルパス。
        max_diff_size: 差分の最大バイト数。

    Returns:
        切り詰め済みの差分。

    Raises:
        EmptyDiffError: paths が空、または差分が空の場合。
        DiffExtractionError: git コマンドの失敗時。
    """
    if not paths:
        raise EmptyDiffError("No matching staged files to review")

    raw = await _run_git("diff", "--cached", "--", *paths)
    if not raw.strip():
        raise EmptyDiffError("Staged diff is empty")

    bounded = truncate_diff(raw, max_diff_size)
    return BoundedDiff(
        # 切り詰め位置でマルチバイト文字が分断された場合は置換文字になる
        text=bounded.decode("utf-8", errors="replace"),
        files=tuple(paths),
        original_size=len(raw),
        size=len(bounded),
    )


async def collect_staged_diff(
    file_patterns: tuple[str, ...],
    max_diff_size: int,
) -> BoundedDiff:
    """ステージ済みファイルを列挙・絞り込みし、切り詰め済みの差分を返す。

    Raises:
        EmptyDiffError: 対象ファイルがない、または差分が空の場合。
        DiffExtractionError: git コマンドの失敗時。
    """
    staged = await list_staged_files()
    return await extract_diff(filter_paths(staged, file_patterns), max_diff_size)
