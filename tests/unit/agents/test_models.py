"""エージェント定義モデルのテスト。"""

import pytest
from pydantic import ValidationError

from kenmon.agents.models import AgentDefinition, LoadError, LoadResult


def _make_definition(**overrides: object) -> AgentDefinition:
    data: dict[str, object] = {
        "name": "security",
        "checklist_ref": "security/checklist.yaml",
        "prompt_template_ref": "security/prompt.txt",
        "checklist": "- no secrets",
        "prompt_template": "{checklist}\n---\n{diff}",
    }
    data.update(overrides)
    return AgentDefinition.model_validate(data)


class TestAgentDefinition:
    def test_valid(self) -> None:
        assert _make_definition().name == "security"

    @pytest.mark.parametrize("name", ["Security", "sec_urity", "sec urity", ""])
    def test_invalid_names(self, name: str) -> None:
        with pytest.raises(ValidationError):
            _make_definition(name=name)

    def test_missing_checklist_placeholder(self) -> None:
        with pytest.raises(ValidationError, match=r"\{checklist\}"):
            _make_definition(prompt_template="{diff}")

    def test_missing_both_placeholders(self) -> None:
        with pytest.raises(ValidationError, match=r"\{checklist\}, \{diff\}"):
            _make_definition(prompt_template="review this")

    def test_empty_checklist_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _make_definition(checklist="")


class TestLoadResult:
    def test_errors_default_empty(self) -> None:
        assert LoadResult(agents=()).errors == ()

    def test_holds_errors(self) -> None:
        error = LoadError(source="broken", message="FileNotFoundError: prompt.txt")
        result = LoadResult(agents=(_make_definition(),), errors=(error,))
        assert result.errors[0].source == "broken"
