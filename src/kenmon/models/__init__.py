"""kenmon ドメインモデルパッケージ。"""

from kenmon.models._base import KenmonBaseModel
from kenmon.models.agent_report import AgentReport, FailureKind, ParseStatus
from kenmon.models.agent_task import AgentTask, TaskStatus
from kenmon.models.decision import DECISION_EXIT_CODES, Decision, Verdict
from kenmon.models.exit_code import ExitCode
from kenmon.models.finding import UNKNOWN_FILE, UNKNOWN_LINE, Finding
from kenmon.models.report import Report
from kenmon.models.review_record import AgentStatusRecord, ReviewRecord
from kenmon.models.severity import (
    SEVERITY_ALIASES,
    SEVERITY_ORDER,
    Severity,
    normalize_severity,
)

__all__ = [
    "DECISION_EXIT_CODES",
    "SEVERITY_ALIASES",
    "SEVERITY_ORDER",
    "UNKNOWN_FILE",
    "UNKNOWN_LINE",
    "AgentReport",
    "AgentStatusRecord",
    "AgentTask",
    "Decision",
    "ExitCode",
    "FailureKind",
    "Finding",
    "KenmonBaseModel",
    "ParseStatus",
    "Report",
    "ReviewRecord",
    "Severity",
    "TaskStatus",
    "Verdict",
    "normalize_severity",
]
