"""エージェント定義ローダー。

エージェントは1ディレクトリ1エージェントで構成し、
ディレクトリ名をエージェント名、``checklist.yaml`` をチェックリスト、
``prompt.txt`` をプロンプトテンプレートとして読み込む。
チェックリストの中身は解釈せず、テキストとしてそのまま扱う。
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from importlib.resources import as_file, files
from pathlib import Path
from typing import Final

from pydantic import ValidationError

from kenmon.agents.models import AgentDefinition, LoadError, LoadResult

CHECKLIST_FILENAME: Final[str] = "checklist.yaml"
"""チェックリスト文書のファイル名。"""

PROMPT_FILENAME: Final[str] = "prompt.txt"
"""プロンプトテンプレートのファイル名。"""

_BUILTIN_PACKAGE: Final[str] = "kenmon.agents._builtin"


def _is_agent_dir_name(name: str) -> bool:
    """__pycache__ や隠しディレクトリを除外する。"""
    return not name.startswith(("_", "."))


def load_agent_dir(path: Path) -> AgentDefinition:
    """単一のエージェントディレクトリから定義を読み込む。

    Args:
        path: エージェントディレクトリのパス。

    Returns:
        構築されたエージェント定義。

    Raises:
        OSError: 必須ファイルが存在しない場合やアクセスエラーの場合。
        UnicodeDecodeError: ファイルが UTF-8 でない場合。
        pydantic.ValidationError: バリデーションエラーの場合。
    """
    checklist_path = path / CHECKLIST_FILENAME
    prompt_path = path / PROMPT_FILENAME
    return AgentDefinition.model_validate(
        {
            "name": path.name,
            "checklist_ref": str(checklist_path),
            "prompt_template_ref": str(prompt_path),
            "checklist": checklist_path.read_text(encoding="utf-8"),
            "prompt_template": prompt_path.read_text(encoding="utf-8"),
        }
    )


def _collect_agents(agent_dirs: Iterable[Path]) -> LoadResult:
    """ディレクトリパスのイテラブルからエージェント定義を収集する。

    ディレクトリ以外および ``_`` / ``.`` で始まる名前はスキップされる。
    個々のディレクトリの読み込みエラーは LoadResult.errors に収集される。

    Args:
        agent_dirs: 候補パスのイテラブル。

    Returns:
        収集されたエージェント定義とエラーの読み込み結果。
    """
    agents: list[AgentDefinition] = []
    errors: list[LoadError] = []

    for path in agent_dirs:
        if not path.is_dir() or not _is_agent_dir_name(path.name):
            continue
        try:
            agents.append(load_agent_dir(path))
        except (ValidationError, OSError, UnicodeDecodeError) as e:
            errors.append(
                LoadError(
                    source=path.name,
                    message=f"{type(e).__name__}: {e}",
                )
            )

    return LoadResult(agents=tuple(agents), errors=tuple(errors))


def load_builtin_agents() -> LoadResult:
    """ビルトインエージェント定義をパッケージリソースから読み込む。

    Returns:
        ビルトイン定義の読み込み結果。

    Raises:
        ModuleNotFoundError: ビルトインパッケージが見つからない場合。
    """
    builtin_package = files(_BUILTIN_PACKAGE)

    def _iter_paths() -> Iterator[Path]:
        for resource in sorted(builtin_package.iterdir(), key=lambda r: r.name):
            if not resource.is_dir():
                continue
            with as_file(resource) as path:
                yield path

    return _collect_agents(_iter_paths())


def load_custom_agents(custom_dir: Path) -> LoadResult:
    """カスタムエージェント定義を指定ディレクトリから読み込む。

    Args:
        custom_dir: カスタムエージェントディレクトリ群の親ディレクトリ。
            存在しない場合は空の LoadResult を返す。

    Returns:
        カスタム定義の読み込み結果。

    Raises:
        NotADirectoryError: custom_dir がファイルパスの場合。
    """
    if not custom_dir.exists():
        return LoadResult(agents=(), errors=())
    if not custom_dir.is_dir():
        raise NotADirectoryError(f"custom_dir is not a directory: {custom_dir}")

    return _collect_agents(sorted(custom_dir.iterdir()))


def load_agents(custom_dir: Path | None = None) -> LoadResult:
    """ビルトインとカスタムを統合してエージェント定義を読み込む。

    カスタム定義がビルトイン定義と同名の場合、カスタム定義がビルトインを上書きする。
    カスタム定義の読み込みに失敗した場合、上書きは行われずビルトイン定義が
    そのまま使用される。結果はエージェント名順。

    Args:
        custom_dir: カスタム定義の親ディレクトリ。None の場合はビルトインのみ。

    Returns:
        統合された読み込み結果。
    """
    builtin = load_builtin_agents()
    if custom_dir is None:
        return builtin

    custom = load_custom_agents(custom_dir)

    custom_names = {a.name for a in custom.agents}
    merged_agents = [a for a in builtin.agents if a.name not in custom_names]
    merged_agents.extend(custom.agents)
    merged_agents.sort(key=lambda a: a.name)

    return LoadResult(
        agents=tuple(merged_agents),
        errors=builtin.errors + custom.errors,
    )
