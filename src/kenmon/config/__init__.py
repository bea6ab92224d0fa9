"""設定管理モジュール。"""

from kenmon.config._loader import ConfigFileError
from kenmon.config._locator import find_project_root
from kenmon.config._resolver import resolve_config

__all__ = [
    "ConfigFileError",
    "find_project_root",
    "resolve_config",
]
