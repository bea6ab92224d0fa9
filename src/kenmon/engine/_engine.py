"""GateEngine — pre-commit レビューゲートの実行パイプライン。

差分取得 → 機密情報の事前検査 → エージェント並列実行 → 出力解析
→ 集約 → 判定 の順に実行する。
レビューできない状況（無効化・差分なし・外部能力なし）は許可として扱う。
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from enum import StrEnum
from pathlib import Path

from kenmon.agents import load_agents
from kenmon.agents.models import AgentDefinition
from kenmon.engine._aggregator import aggregate_reports
from kenmon.engine._artifacts import (
    ArtifactWriteError,
    write_agent_output,
    write_last_review,
)
from kenmon.engine._decision import decide
from kenmon.engine._diff import (
    BoundedDiff,
    DiffExtractionError,
    EmptyDiffError,
    collect_staged_diff,
)
from kenmon.engine._dispatcher import OutputSink, dispatch_agents
from kenmon.engine._invoker import (
    AgentInvoker,
    MissingCapabilityError,
    build_invoker,
    ensure_available,
)
from kenmon.engine._parser import failed_agent_report, parse_agent_output
from kenmon.engine._precheck import ConfirmCallback, PrecheckResult, run_precheck
from kenmon.engine._progress import (
    ProgressReporter,
    create_progress_reporter,
    report_load_warnings,
)
from kenmon.engine._runner import build_execution_context
from kenmon.models._base import KenmonBaseModel
from kenmon.models.agent_task import AgentTask
from kenmon.models.config import KenmonConfig
from kenmon.models.decision import Verdict
from kenmon.models.exit_code import ExitCode
from kenmon.models.report import Report

logger = logging.getLogger(__name__)

InvokerFactory = Callable[[KenmonConfig, str], AgentInvoker]
"""(設定, エージェント名) から AgentInvoker を構築する関数。"""


class RunStatus(StrEnum):
    """ゲート実行の到達状態。"""

    REVIEWED = "reviewed"
    SKIPPED = "skipped"
    ABORTED = "aborted"
    ERROR = "error"


class EngineResult(KenmonBaseModel):
    """GateEngine の実行結果。

    Attributes:
        status: 到達状態。REVIEWED の場合のみ verdict / report を持つ。
        exit_code: プロセス終了コード。
        message: スキップ・中断・エラー時の説明。
        verdict: ゲート判定。
        report: 集約レポート。
        reviewed_files: レビュー対象ファイル。
        diff_truncated: 差分が上限バイト数で切り詰められたか。
        precheck: 機密情報の事前検査結果。
    """

    status: RunStatus
    exit_code: ExitCode
    message: str = ""
    verdict: Verdict | None = None
    report: Report | None = None
    reviewed_files: tuple[str, ...] = ()
    diff_truncated: bool = False
    precheck: PrecheckResult | None = None


def _skipped(message: str, **fields: object) -> EngineResult:
    return EngineResult(
        status=RunStatus.SKIPPED, exit_code=ExitCode.SUCCESS, message=message, **fields
    )


def _select_agents(
    config: KenmonConfig, custom_agents_dir: Path | None
) -> list[AgentDefinition]:
    """エージェント定義を読み込み、無効化されたものを除外する。"""
    load_result = load_agents(custom_dir=custom_agents_dir)
    if load_result.errors:
        report_load_warnings(load_result.errors)
    disabled = config.disabled_agents()
    return [a for a in load_result.agents if a.name not in disabled]


def _check_capabilities(
    agents: list[AgentDefinition],
    config: KenmonConfig,
    invoker_factory: InvokerFactory,
) -> tuple[list[tuple[AgentDefinition, AgentInvoker]], list[str]]:
    """各エージェントの呼び出し先が到達可能かを確認する。

    Returns:
        (到達可能なエージェントと invoker の組, 到達不能理由のリスト)。
    """
    available: list[tuple[AgentDefinition, AgentInvoker]] = []
    reasons: list[str] = []
    for agent in agents:
        invoker = invoker_factory(config, agent.name)
        try:
            ensure_available(invoker)
        except MissingCapabilityError as exc:
            logger.warning("Agent '%s' unavailable: %s", agent.name, exc)
            if str(exc) not in reasons:
                reasons.append(str(exc))
            continue
        available.append((agent, invoker))
    return available, reasons


def _output_sink(output_dir: Path) -> OutputSink:
    def _write(task: AgentTask) -> None:
        write_agent_output(output_dir, task)

    return _write


def _report_truncation(diff: BoundedDiff) -> None:
    print(
        f"Warning: Diff truncated to {diff.size} bytes "
        f"(original {diff.original_size} bytes)",
        file=sys.stderr,
    )


async def run_gate(
    config: KenmonConfig,
    *,
    confirm: ConfirmCallback | None = None,
    custom_agents_dir: Path | None = None,
    output_dir: Path | None = None,
    reporter: ProgressReporter | None = None,
    invoker_factory: InvokerFactory = build_invoker,
) -> EngineResult:
    """レビューゲートを実行する。

    パイプライン:
        1. 無効化チェック（enabled=false → スキップ）
        2. ステージ済み差分の取得・切り詰め（差分なし → スキップ）
        3. エージェント読み込み・無効エージェント除外
        4. 外部レビュー能力の到達確認（全て到達不能 → スキップ）
        5. 機密情報の事前検査（確認拒否 → 中断）
        6. プロンプト合成・並列実行
        7. 出力解析（全エージェント失敗時は解析しない）
        8. 集約・判定
        9. 成果物保存（output_dir 指定時）

    Args:
        config: 解決済みの設定。
        confirm: 機密情報検出時の確認関数。None の場合は続行しない。
        custom_agents_dir: カスタムエージェント定義ディレクトリ。
        output_dir: 成果物の保存先。None の場合は保存しない。
        reporter: 進捗レポーター。None の場合は stderr の TTY 状態で自動選択。
        invoker_factory: AgentInvoker の構築関数。

    Returns:
        実行結果。
    """
    # Step 1: 無効化チェック
    if not config.enabled:
        return _skipped("AI review is disabled")

    # Step 2: 差分取得
    try:
        diff = await collect_staged_diff(config.file_patterns, config.max_diff_size)
    except EmptyDiffError as exc:
        return _skipped(str(exc))
    except DiffExtractionError as exc:
        return EngineResult(
            status=RunStatus.ERROR,
            exit_code=ExitCode.EXECUTION_ERROR,
            message=str(exc),
        )
    if diff.truncated:
        _report_truncation(diff)
    diff_fields: dict[str, object] = {
        "reviewed_files": diff.files,
        "diff_truncated": diff.truncated,
    }

    # Step 3: エージェント読み込み
    agents = _select_agents(config, custom_agents_dir)
    if not agents:
        return _skipped("No review agents are enabled", **diff_fields)

    # Step 4: 外部レビュー能力の到達確認
    available, reasons = _check_capabilities(agents, config, invoker_factory)
    if not available:
        return _skipped(
            "Review capability unavailable: " + "; ".join(reasons), **diff_fields
        )
    for reason in reasons:
        print(f"Warning: {reason}", file=sys.stderr)

    # Step 5: 機密情報の事前検査
    precheck = run_precheck(
        diff.text, bypass=config.skip_sensitive_check, confirm=confirm
    )
    if not precheck.proceed:
        return EngineResult(
            status=RunStatus.ABORTED,
            exit_code=ExitCode.ABORTED,
            message="Review aborted: potentially sensitive data was not approved for sending",
            precheck=precheck,
            **diff_fields,
        )

    # Step 6: 並列実行
    contexts = [
        build_execution_context(agent, diff.text, config, invoker=invoker)
        for agent, invoker in available
    ]
    progress = reporter if reporter is not None else create_progress_reporter()
    try:
        progress.start()
        dispatched = await dispatch_agents(
            contexts,
            deadline_seconds=config.timeout,
            reporter=progress,
            sink=_output_sink(output_dir) if output_dir is not None else None,
        )
    finally:
        progress.stop()

    # Step 7: 出力解析
    if dispatched.all_failed:
        reports = [failed_agent_report(task) for task in dispatched.tasks]
    else:
        reports = [parse_agent_output(task) for task in dispatched.tasks]

    # Step 8: 集約・判定
    report = aggregate_reports(reports)
    verdict = decide(report)

    # Step 9: 成果物保存
    if output_dir is not None:
        try:
            write_last_review(output_dir, verdict, report)
        except ArtifactWriteError as exc:
            print(f"Warning: {exc}", file=sys.stderr)

    return EngineResult(
        status=RunStatus.REVIEWED,
        exit_code=verdict.exit_code,
        verdict=verdict,
        report=report,
        precheck=precheck,
        **diff_fields,
    )
