"""KenmonBaseModel と共通ユーティリティのテスト。"""

import pytest
from pydantic import ValidationError

from kenmon.models._base import KenmonBaseModel, normalize_enum_value
from kenmon.models.agent_task import TaskStatus
from kenmon.models.severity import Severity


class SampleModel(KenmonBaseModel):
    """テスト用のサブクラス。"""

    name: str
    value: int


class TestKenmonBaseModel:
    def test_extra_field_rejected(self) -> None:
        with pytest.raises(ValidationError, match="extra_forbidden"):
            SampleModel(name="x", value=1, unknown="y")  # type: ignore[call-arg]

    def test_frozen(self) -> None:
        model = SampleModel(name="x", value=1)
        with pytest.raises(ValidationError):
            model.value = 2  # type: ignore[misc]

    def test_model_copy_returns_new_instance(self) -> None:
        model = SampleModel(name="x", value=1)
        copied = model.model_copy(update={"value": 2})
        assert model.value == 1
        assert copied.value == 2


class TestNormalizeEnumValue:
    @pytest.mark.parametrize("raw", ["block", " BLOCK ", "Block"])
    def test_case_and_whitespace_insensitive(self, raw: str) -> None:
        assert normalize_enum_value(raw, Severity) == "BLOCK"

    def test_lowercase_enum_values(self) -> None:
        assert normalize_enum_value("TIMED_OUT", TaskStatus) == "timed_out"

    def test_unknown_string_passthrough(self) -> None:
        assert normalize_enum_value("urgent", Severity) == "urgent"

    def test_non_string_passthrough(self) -> None:
        assert normalize_enum_value(3, Severity) == 3
