"""エージェント定義・ローダー。

公開 API:
    - モデル: AgentDefinition, LoadError, LoadResult
    - ローダー: load_builtin_agents, load_custom_agents, load_agents
"""

from kenmon.agents.loader import load_agents, load_builtin_agents, load_custom_agents
from kenmon.agents.models import AgentDefinition, LoadError, LoadResult

__all__ = [
    "AgentDefinition",
    "LoadError",
    "LoadResult",
    "load_agents",
    "load_builtin_agents",
    "load_custom_agents",
]
