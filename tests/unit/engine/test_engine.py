"""GateEngine のテスト。

差分取得をモックし、エージェント呼び出しを FakeInvoker に差し替えて
パイプライン全体（事前検査 → 並列実行 → 解析 → 集約 → 判定）を検証する。
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from kenmon.engine._diff import BoundedDiff, DiffExtractionError, EmptyDiffError
from kenmon.engine._engine import EngineResult, InvokerFactory, RunStatus, run_gate
from kenmon.engine._invoker import AgentInvocationError
from kenmon.engine._precheck import PrecheckOutcome
from kenmon.models.agent_report import FailureKind, ParseStatus
from kenmon.models.config import AgentConfig, KenmonConfig
from kenmon.models.decision import Decision
from kenmon.models.exit_code import ExitCode
from kenmon.models.severity import Severity
from tests.unit.engine.conftest import EMPTY_JSON, FakeInvoker

PATCH_COLLECT_DIFF = "kenmon.engine._engine.collect_staged_diff"

DIFF_TEXT = """\
diff --git a/Foo.java b/Foo.java
+++ b/Foo.java
@@ -1,3 +1,5 @@
 class Foo {
+    void connect() { db.open("admin", "hunter2"); }
 }
"""

SENSITIVE_DIFF_TEXT = DIFF_TEXT + '+    String password = "hunter2";\n'

SECURITY_BLOCK = (
    '{"issues": [{"severity": "BLOCK", "file": "Foo.java", "line": 4, '
    '"message": "hardcoded password", "rule_id": "SEC-001"}], "summary": "1 issue"}'
)
QUALITY_DUPLICATE = (
    '```json\n{"issues": [{"severity": "WARN", "file": "Foo.java", "line": 4, '
    '"message": "Hardcoded password detected"}]}\n```'
)
NAMING_THREE_INFO = json.dumps(
    {
        "issues": [
            {"severity": "INFO", "file": "Foo.java", "line": 1, "message": "Class name too generic"},
            {"severity": "LOW", "file": "Foo.java", "line": 2, "message": "Method name is a verb"},
            {"severity": "INFO", "file": "Foo.java", "line": 3, "message": "Abbreviated variable db"},
        ]
    }
)


def _diff(text: str = DIFF_TEXT, original_size: int | None = None) -> BoundedDiff:
    size = len(text.encode())
    return BoundedDiff(
        text=text,
        files=("Foo.java",),
        original_size=original_size if original_size is not None else size,
        size=size,
    )


def _factory(invokers: Mapping[str, FakeInvoker]) -> InvokerFactory:
    def _build(config: KenmonConfig, agent_name: str) -> FakeInvoker:
        return invokers[agent_name]

    return _build


async def _run(
    invokers: Mapping[str, FakeInvoker],
    *,
    config: KenmonConfig | None = None,
    diff: BoundedDiff | None = None,
    **kwargs: object,
) -> EngineResult:
    with patch(PATCH_COLLECT_DIFF, new_callable=AsyncMock) as mock_diff:
        mock_diff.return_value = diff if diff is not None else _diff()
        return await run_gate(
            config if config is not None else KenmonConfig(),
            reporter=MagicMock(),
            invoker_factory=_factory(invokers),
            **kwargs,  # type: ignore[arg-type]
        )


# =============================================================================
# レビューシナリオ
# =============================================================================


class TestReviewScenarios:
    async def test_duplicate_block_across_agents(self) -> None:
        """同一インシデントの BLOCK は1件に統合され、コミットをブロックする。"""
        result = await _run(
            {
                "security": FakeInvoker([SECURITY_BLOCK]),
                "quality": FakeInvoker([QUALITY_DUPLICATE]),
                "naming": FakeInvoker([EMPTY_JSON]),
            }
        )
        assert result.status == RunStatus.REVIEWED
        assert result.verdict is not None and result.report is not None
        assert result.verdict.decision == Decision.BLOCK
        assert result.exit_code == ExitCode.BLOCKED == 1
        (finding,) = result.report.findings
        assert finding.severity == Severity.BLOCK
        assert finding.provenance == ("quality", "security")

    async def test_info_only_allows_with_warnings(self) -> None:
        result = await _run(
            {
                "naming": FakeInvoker([NAMING_THREE_INFO]),
                "security": FakeInvoker([EMPTY_JSON]),
                "quality": FakeInvoker([EMPTY_JSON]),
            }
        )
        assert result.verdict is not None and result.report is not None
        assert result.verdict.decision == Decision.ALLOW_WITH_WARNINGS
        assert result.exit_code == ExitCode.SUCCESS
        assert result.report.info_count == 3
        assert result.report.block_count == result.report.warn_count == 0

    async def test_all_timed_out_fails_open(self) -> None:
        result = await _run(
            {name: FakeInvoker([TimeoutError()]) for name in ("security", "quality", "naming")}
        )
        assert result.verdict is not None and result.report is not None
        assert result.verdict.decision == Decision.SERVICE_UNAVAILABLE
        assert result.exit_code == ExitCode.SUCCESS
        assert result.report.degraded
        assert result.report.all_agents_failed
        assert result.report.total_count == 0
        assert {r.failure_kind for r in result.report.agent_reports} == {
            FailureKind.TIMEOUT
        }

    async def test_shared_deadline_fails_open(self) -> None:
        result = await _run(
            {name: FakeInvoker(delay=5) for name in ("security", "quality", "naming")},
            config=KenmonConfig(timeout=1),
        )
        assert result.verdict is not None
        assert result.verdict.decision == Decision.SERVICE_UNAVAILABLE

    @pytest.mark.parametrize(
        ("naming_output", "expected"),
        [
            (NAMING_THREE_INFO, Decision.ALLOW_WITH_WARNINGS),
            (EMPTY_JSON, Decision.ALLOW),
        ],
    )
    async def test_unparsable_agent_contributes_nothing(
        self, naming_output: str, expected: Decision
    ) -> None:
        result = await _run(
            {
                "security": FakeInvoker(["I looked at the code and it seems fine."]),
                "naming": FakeInvoker([naming_output]),
                "quality": FakeInvoker([EMPTY_JSON]),
            }
        )
        assert result.verdict is not None and result.report is not None
        assert result.verdict.decision == expected
        assert result.report.degraded
        security = next(
            r for r in result.report.agent_reports if r.agent_name == "security"
        )
        assert security.parse_status == ParseStatus.FAILED
        assert security.findings == ()

    async def test_quota_error_surfaced(self) -> None:
        error = AgentInvocationError(
            "copilot exited with code 1", exit_code=1, output="Error: quota exceeded"
        )
        result = await _run(
            {
                "security": FakeInvoker([error]),
                "naming": FakeInvoker([EMPTY_JSON]),
                "quality": FakeInvoker([EMPTY_JSON]),
            }
        )
        assert result.report is not None
        assert [r.agent_name for r in result.report.service_errors] == ["security"]
        assert result.exit_code == ExitCode.SUCCESS


# =============================================================================
# スキップ・中断・エラー
# =============================================================================


class TestSkipAndAbort:
    async def test_disabled(self) -> None:
        with patch(PATCH_COLLECT_DIFF, new_callable=AsyncMock) as mock_diff:
            result = await run_gate(KenmonConfig(enabled=False))
        assert result.status == RunStatus.SKIPPED
        assert result.exit_code == ExitCode.SUCCESS
        assert result.message == "AI review is disabled"
        mock_diff.assert_not_awaited()

    @patch(PATCH_COLLECT_DIFF, new_callable=AsyncMock)
    async def test_no_diff(self, mock_diff: AsyncMock) -> None:
        mock_diff.side_effect = EmptyDiffError("No matching staged files to review")
        result = await run_gate(KenmonConfig())
        assert result.status == RunStatus.SKIPPED
        assert result.exit_code == ExitCode.SUCCESS

    @patch(PATCH_COLLECT_DIFF, new_callable=AsyncMock)
    async def test_git_failure(self, mock_diff: AsyncMock) -> None:
        mock_diff.side_effect = DiffExtractionError("Command not found: git")
        result = await run_gate(KenmonConfig())
        assert result.status == RunStatus.ERROR
        assert result.exit_code == ExitCode.EXECUTION_ERROR

    async def test_capability_missing_skips_without_dispatch(self) -> None:
        invokers = {
            name: FakeInvoker(unavailable_reason="Command not found in PATH: copilot")
            for name in ("security", "quality", "naming")
        }
        result = await _run(invokers)
        assert result.status == RunStatus.SKIPPED
        assert result.exit_code == ExitCode.SUCCESS
        assert result.message == (
            "Review capability unavailable: Command not found in PATH: copilot"
        )
        assert all(invoker.calls == 0 for invoker in invokers.values())

    async def test_partially_unavailable_runs_rest(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        invokers = {
            "security": FakeInvoker(unavailable_reason="ANTHROPIC_API_KEY is not set"),
            "quality": FakeInvoker([EMPTY_JSON]),
            "naming": FakeInvoker([EMPTY_JSON]),
        }
        result = await _run(invokers)
        assert result.report is not None
        assert [r.agent_name for r in result.report.agent_reports] == ["naming", "quality"]
        assert "Warning: ANTHROPIC_API_KEY is not set" in capsys.readouterr().err

    async def test_all_agents_disabled(self) -> None:
        config = KenmonConfig(
            agents={
                name: AgentConfig(enabled=False)
                for name in ("security", "quality", "naming")
            }
        )
        result = await _run({}, config=config)
        assert result.status == RunStatus.SKIPPED
        assert result.message == "No review agents are enabled"

    async def test_disabled_agent_not_invoked(self) -> None:
        invokers = {name: FakeInvoker() for name in ("security", "quality", "naming")}
        config = KenmonConfig(agents={"naming": AgentConfig(enabled=False)})
        await _run(invokers, config=config)
        assert invokers["naming"].calls == 0
        assert invokers["security"].calls == 1


class TestSensitivePrecheck:
    async def test_declined_aborts_before_dispatch(self) -> None:
        invokers = {name: FakeInvoker() for name in ("security", "quality", "naming")}
        result = await _run(
            invokers, diff=_diff(SENSITIVE_DIFF_TEXT), confirm=lambda _: False
        )
        assert result.status == RunStatus.ABORTED
        assert result.exit_code == ExitCode.ABORTED
        assert result.precheck is not None
        assert result.precheck.outcome == PrecheckOutcome.DECLINED
        assert all(invoker.calls == 0 for invoker in invokers.values())

    async def test_confirmed_continues(self) -> None:
        invokers = {name: FakeInvoker() for name in ("security", "quality", "naming")}
        result = await _run(
            invokers, diff=_diff(SENSITIVE_DIFF_TEXT), confirm=lambda _: True
        )
        assert result.status == RunStatus.REVIEWED
        assert result.precheck is not None
        assert result.precheck.outcome == PrecheckOutcome.CONFIRMED

    async def test_bypass(self) -> None:
        invokers = {name: FakeInvoker() for name in ("security", "quality", "naming")}
        result = await _run(
            invokers,
            config=KenmonConfig(skip_sensitive_check=True),
            diff=_diff(SENSITIVE_DIFF_TEXT),
        )
        assert result.status == RunStatus.REVIEWED
        assert result.precheck is not None
        assert result.precheck.outcome == PrecheckOutcome.BYPASSED


# =============================================================================
# プロンプト・成果物
# =============================================================================


class TestPromptAndArtifacts:
    async def test_diff_embedded_in_every_prompt(self) -> None:
        invokers = {name: FakeInvoker() for name in ("security", "quality", "naming")}
        await _run(invokers)
        for invoker in invokers.values():
            (prompt,) = invoker.prompts
            assert 'db.open("admin", "hunter2")' in prompt
            assert prompt.endswith("CRITICAL: Output ONLY valid JSON.")

    async def test_truncation_reported(self, capsys: pytest.CaptureFixture[str]) -> None:
        invokers = {name: FakeInvoker() for name in ("security", "quality", "naming")}
        result = await _run(invokers, diff=_diff(original_size=50_000))
        assert result.diff_truncated
        assert "Warning: Diff truncated" in capsys.readouterr().err

    async def test_artifacts_written(self, tmp_path: Path) -> None:
        invokers = {
            "security": FakeInvoker(["not parseable"]),
            "quality": FakeInvoker([AgentInvocationError("exit 1")]),
            "naming": FakeInvoker([EMPTY_JSON]),
        }
        await _run(invokers, output_dir=tmp_path)
        reports_dir = tmp_path / "reports"
        assert sorted(p.name for p in reports_dir.iterdir()) == [
            "naming.txt",
            "security.txt",
        ]
        assert (reports_dir / "security.txt").read_text(encoding="utf-8") == "not parseable"
        record = json.loads((tmp_path / "last_review.json").read_text(encoding="utf-8"))
        assert record["decision"] == "ALLOW"

    async def test_artifact_failure_does_not_change_decision(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        invokers = {name: FakeInvoker([SECURITY_BLOCK]) for name in ("security", "quality", "naming")}
        result = await _run(invokers, output_dir=blocker)
        assert result.exit_code == ExitCode.BLOCKED
        assert "Warning:" in capsys.readouterr().err
