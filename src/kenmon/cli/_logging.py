"""ログ設定。ログは stderr に出力し、stdout はレポート専用とする。"""

from __future__ import annotations

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(verbose: bool = False) -> None:
    """ルートロガーに RichHandler を設定する。

    Args:
        verbose: True の場合 DEBUG、False の場合 WARNING レベル。
    """
    log_level = logging.DEBUG if verbose else logging.WARNING
    handler = RichHandler(
        console=Console(file=sys.stderr),
        show_path=verbose,
        rich_tracebacks=verbose,
    )
    logging.basicConfig(
        level=log_level,
        format="%(name)s: %(message)s",
        datefmt="%H:%M:%S",
        handlers=[handler],
        force=True,
    )
