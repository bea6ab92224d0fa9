"""レビューゲート実行エンジン。

以下のパイプラインでステージ済み変更をレビューし、コミット可否を判定する:

1. 差分取得（DiffExtractor）
2. 機密情報の事前検査（SensitiveDataPrecheck）
3. エージェント並列実行（AgentDispatcher × AgentInvoker）
4. 出力解析（ResponseParser）
5. 重複排除・集計（Aggregator）
6. 判定（DecisionEngine）
"""

from kenmon.engine._aggregator import aggregate_reports, deduplicate_findings
from kenmon.engine._artifacts import ArtifactWriteError
from kenmon.engine._decision import decide
from kenmon.engine._diff import BoundedDiff, DiffExtractionError, EmptyDiffError
from kenmon.engine._dispatcher import DispatchResult, dispatch_agents
from kenmon.engine._engine import EngineResult, RunStatus, run_gate
from kenmon.engine._invoker import (
    AgentInvocationError,
    AgentInvoker,
    CommandInvoker,
    MissingCapabilityError,
    ModelInvoker,
    compose_prompt,
)
from kenmon.engine._parser import parse_agent_output
from kenmon.engine._precheck import (
    PrecheckOutcome,
    PrecheckResult,
    SensitiveMatch,
    run_precheck,
)

__all__ = [
    "AgentInvocationError",
    "AgentInvoker",
    "ArtifactWriteError",
    "BoundedDiff",
    "CommandInvoker",
    "DiffExtractionError",
    "DispatchResult",
    "EmptyDiffError",
    "EngineResult",
    "MissingCapabilityError",
    "ModelInvoker",
    "PrecheckOutcome",
    "PrecheckResult",
    "RunStatus",
    "SensitiveMatch",
    "aggregate_reports",
    "compose_prompt",
    "decide",
    "deduplicate_findings",
    "dispatch_agents",
    "parse_agent_output",
    "run_gate",
    "run_precheck",
]
