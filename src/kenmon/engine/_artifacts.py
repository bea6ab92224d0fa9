"""Artifacts — エージェント生出力と集約レポートのファイル保存。

保存先（output_dir 配下）:
    reports/<agent>.txt  各エージェントの生出力（解析の成否とは独立）
    last_review.json     直近レビューの判定・集計・指摘
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Final

from kenmon.models.agent_task import AgentTask
from kenmon.models.decision import Verdict
from kenmon.models.report import Report
from kenmon.models.review_record import ReviewRecord

REPORTS_DIR_NAME: Final[str] = "reports"
LAST_REVIEW_FILENAME: Final[str] = "last_review.json"


class ArtifactWriteError(Exception):
    """成果物の書き込みエラー。ディレクトリ作成失敗、I/O エラー等。"""


def _ensure_dir(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ArtifactWriteError(
            f"Failed to create directory: {path}: {exc}\n"
            "Check directory permissions and available disk space."
        ) from exc


def agent_output_path(output_dir: Path, agent_name: str) -> Path:
    """エージェントの生出力ファイルのパスを返す。"""
    return output_dir / REPORTS_DIR_NAME / f"{agent_name}.txt"


def write_agent_output(output_dir: Path, task: AgentTask) -> Path:
    """エージェントの生出力を reports/<agent>.txt に上書き保存する。

    Raises:
        ArtifactWriteError: ディレクトリ作成失敗、I/O エラー時。
    """
    path = agent_output_path(output_dir, task.name)
    _ensure_dir(path.parent)
    try:
        path.write_text(task.raw_output or "", encoding="utf-8")
    except OSError as exc:
        raise ArtifactWriteError(f"Failed to write {path}: {exc}") from exc
    return path


def write_last_review(
    output_dir: Path,
    verdict: Verdict,
    report: Report,
    reviewed_at: datetime | None = None,
) -> Path:
    """判定と集約レポートを last_review.json に上書き保存する。

    Raises:
        ArtifactWriteError: ディレクトリ作成失敗、I/O エラー時。
    """
    record = ReviewRecord.build(
        verdict, report, reviewed_at or datetime.now(timezone.utc)
    )
    _ensure_dir(output_dir)
    path = output_dir / LAST_REVIEW_FILENAME
    try:
        path.write_text(record.model_dump_json(indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        raise ArtifactWriteError(f"Failed to write {path}: {exc}") from exc
    return path
