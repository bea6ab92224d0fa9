"""ExitCode — 終了コードの定義。"""

from enum import IntEnum


class ExitCode(IntEnum):
    """プロセス終了コード。

    pre-commit フックはゼロ以外でコミットを中断する。
    SUCCESS はレビュー未実施（無効化・対象なし・能力欠如）も含む。
    """

    SUCCESS = 0
    BLOCKED = 1
    ABORTED = 2
    EXECUTION_ERROR = 3
    INPUT_ERROR = 4
