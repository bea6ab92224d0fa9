"""CliApp — Typer アプリケーション定義。

git pre-commit フックから引数なしで呼び出されることを想定する。
レポートは stdout、進捗・警告・エラーは stderr に出力する。
終了コードは ExitCode に従い、BLOCK のみがコミットを止める。
"""

from __future__ import annotations

import asyncio
import importlib.metadata
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError

from kenmon.agents import LoadResult, load_agents, load_builtin_agents
from kenmon.cli._formatter import format_result
from kenmon.cli._logging import setup_logging
from kenmon.config import ConfigFileError, find_project_root, resolve_config
from kenmon.config._locator import PROJECT_DIR_NAME
from kenmon.engine import EngineResult, RunStatus, SensitiveMatch, run_gate
from kenmon.engine._progress import report_sensitive_matches
from kenmon.models.config import InvokerKind, KenmonConfig, OutputFormat
from kenmon.models.exit_code import ExitCode

_AGENTS_DIR_NAME = "agents"

app = typer.Typer(
    name="kenmon",
    help=(
        "Multi-agent pre-commit review gate.\n\n"
        "Reviews the staged diff with several AI review agents in parallel "
        "and blocks the commit only when a BLOCK finding is reported."
    ),
    add_completion=False,
    invoke_without_command=True,
)


def _version_callback(value: bool) -> None:
    """--version 指定時にバージョン番号を出力して終了する。"""
    if value:
        print(importlib.metadata.version("kenmon"))
        raise typer.Exit()


def main() -> None:
    """CLI エントリポイント。pyproject.toml の [project.scripts] から呼び出される。"""
    app()


@app.callback()
def gate_callback(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
    # 設定上書きオプション
    model: Annotated[
        str | None, typer.Option(help="Model selector passed to the agent invoker.")
    ] = None,
    timeout: Annotated[
        int | None,
        typer.Option(help="Shared dispatch deadline in seconds.", min=1),
    ] = None,
    max_diff_size: Annotated[
        int | None,
        typer.Option("--max-diff-size", help="Maximum diff size in bytes.", min=1),
    ] = None,
    skip_sensitive_check: Annotated[
        bool | None,
        typer.Option(
            "--skip-sensitive-check/--sensitive-check",
            help="Skip/run the sensitive-data precheck.",
        ),
    ] = None,
    enabled: Annotated[
        bool | None,
        typer.Option("--enable/--disable", help="Enable/disable the review gate."),
    ] = None,
    invoker: Annotated[
        InvokerKind | None,
        typer.Option(help="Agent invoker backend: model or command."),
    ] = None,
    output_format: Annotated[
        OutputFormat | None,
        typer.Option("--format", help="Output format: markdown or json."),
    ] = None,
    save_reports: Annotated[
        bool | None,
        typer.Option(
            "--save-reports/--no-save-reports",
            help="Save per-agent output and the aggregated report.",
        ),
    ] = None,
    # per-invocation オプション
    yes: Annotated[
        bool,
        typer.Option(
            "--yes", "-y", help="Continue without asking when sensitive data is found."
        ),
    ] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging.")
    ] = False,
) -> None:
    """Review the staged changes and decide whether the commit may proceed."""
    if ctx.invoked_subcommand is not None:
        return

    setup_logging(verbose)

    # 1. 設定解決
    config = _resolve_config_or_exit(
        {
            "model": model,
            "timeout": timeout,
            "max_diff_size": max_diff_size,
            "skip_sensitive_check": skip_sensitive_check,
            "enabled": enabled,
            "invoker": invoker,
            "output_format": output_format,
            "save_reports": save_reports,
        }
    )

    # 2. カスタムエージェント・成果物ディレクトリ解決
    custom_agents_dir = _custom_agents_dir()
    output_dir = Path(config.output_dir) if config.save_reports else None

    # 3. ゲート実行
    try:
        result = asyncio.run(
            run_gate(
                config,
                confirm=_approve_sensitive if yes else _confirm_sensitive,
                custom_agents_dir=custom_agents_dir,
                output_dir=output_dir,
            )
        )
    except (KeyboardInterrupt, SystemExit):
        raise
    except Exception as e:
        print(
            f"Error: Review execution failed: {e}\n"
            "Use --verbose for details, or 'git commit --no-verify' to bypass.",
            file=sys.stderr,
        )
        raise typer.Exit(code=ExitCode.EXECUTION_ERROR) from e

    # 4. 出力
    _print_result(result, config.output_format)
    raise typer.Exit(code=result.exit_code)


@app.command()
def agents() -> None:
    """List available review agents."""
    config = _resolve_config_or_exit({})
    try:
        result = load_agents(custom_dir=_custom_agents_dir())
        builtin_result = load_builtin_agents()
    except Exception as e:
        print(
            f"Error: Failed to load agent definitions: {e}\n"
            f"Check the {PROJECT_DIR_NAME}/{_AGENTS_DIR_NAME}/ directory and its permissions.",
            file=sys.stderr,
        )
        raise typer.Exit(code=ExitCode.EXECUTION_ERROR) from None

    for error in result.errors:
        print(
            f"Warning: Failed to load agent '{error.source}': {error.message}",
            file=sys.stderr,
        )
    _print_agents_list(result, {a.name for a in builtin_result.agents}, config)


# --- ヘルパー ---

_LIST_NAME_WIDTH = 16
_LIST_SOURCE_WIDTH = 10
_LIST_STATUS_WIDTH = 10


def _print_agents_list(
    result: LoadResult, builtin_names: set[str], config: KenmonConfig
) -> None:
    """エージェント一覧をテーブル形式で stdout に表示する。"""
    header = (
        f"{'NAME':<{_LIST_NAME_WIDTH}}"
        f"{'SOURCE':<{_LIST_SOURCE_WIDTH}}"
        f"{'STATUS':<{_LIST_STATUS_WIDTH}}"
        "MODEL"
    )
    print(header)
    print("-" * len(header))

    disabled = config.disabled_agents()
    for agent in result.agents:
        source = "builtin" if agent.name in builtin_names else "custom"
        status = "disabled" if agent.name in disabled else "enabled"
        model = (
            config.model_for(agent.name)
            if config.invoker == InvokerKind.MODEL
            else config.command[0]
        )
        print(
            f"{agent.name:<{_LIST_NAME_WIDTH}}"
            f"{source:<{_LIST_SOURCE_WIDTH}}"
            f"{status:<{_LIST_STATUS_WIDTH}}"
            f"{model}"
        )


def _resolve_config_or_exit(cli_options: dict[str, object]) -> KenmonConfig:
    """設定を解決する。不正な設定の場合は INPUT_ERROR で終了する。"""
    try:
        return resolve_config(cli_overrides=cli_options)
    except (ValidationError, ConfigFileError, ValueError, TypeError) as e:
        print(
            f"Error: Invalid configuration: {e}\n"
            f"Check {PROJECT_DIR_NAME}/config.toml, [tool.kenmon] in pyproject.toml "
            "and the AI_REVIEW_ENABLED / SKIP_SENSITIVE_CHECK / KENMON_* "
            "environment variables.",
            file=sys.stderr,
        )
        raise typer.Exit(code=ExitCode.INPUT_ERROR) from None
    except PermissionError as e:
        print(
            f"Error: Cannot read configuration file: {e}\n"
            f"Check file permissions for {PROJECT_DIR_NAME}/config.toml.",
            file=sys.stderr,
        )
        raise typer.Exit(code=ExitCode.INPUT_ERROR) from None


def _custom_agents_dir() -> Path | None:
    project_root = find_project_root(Path.cwd())
    if project_root is None:
        return None
    return project_root / PROJECT_DIR_NAME / _AGENTS_DIR_NAME


def _confirm_sensitive(matches: Sequence[SensitiveMatch]) -> bool:
    """検出一覧を表示し、続行するかを対話的に確認する。

    既定は No。入力が得られない場合（EOF 等）も続行しない。
    """
    report_sensitive_matches(matches)
    try:
        return typer.confirm("Continue with AI review?", default=False, err=True)
    except typer.Abort:
        return False


def _approve_sensitive(matches: Sequence[SensitiveMatch]) -> bool:
    """--yes 指定時の確認関数。検出一覧を表示して続行する。"""
    report_sensitive_matches(matches)
    print("Continuing because --yes was given.", file=sys.stderr)
    return True


def _print_result(result: EngineResult, output_format: OutputFormat) -> None:
    """レビュー結果を stdout に、スキップ・中断・エラーの説明を stderr に出力する。"""
    match result.status:
        case RunStatus.SKIPPED:
            print(f"Skipping AI review: {result.message}", file=sys.stderr)
        case RunStatus.ABORTED:
            print(f"Commit aborted: {result.message}", file=sys.stderr)
        case RunStatus.ERROR:
            print(f"Error: {result.message}", file=sys.stderr)
        case RunStatus.REVIEWED:
            pass

    if result.status == RunStatus.REVIEWED or output_format == OutputFormat.JSON:
        print(format_result(result, output_format))
