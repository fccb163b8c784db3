"""
Tests for handler result variants and the response envelope.
"""
import pytest

from rollcall.pipeline import (
    BypassReason,
    Failure,
    SelfHandled,
    Success,
    ValidationFailure,
    build_envelope,
    coerce_result,
    normalize,
    normalize_errors,
)
from rollcall.pipeline.envelope import DEFAULT_FAILURE_MESSAGE


# =============================================================================
# Result Coercion Tests
# =============================================================================


class TestCoerceResult:
    """Tests for coerce_result()."""

    def test_variants_pass_through(self):
        result = Failure("nope", code=404)
        assert coerce_result(result) is result

    def test_none_is_empty_success(self):
        assert coerce_result(None) == Success({})

    def test_plain_dict_is_success_data(self):
        assert coerce_result({"id": "1"}) == Success({"id": "1"})

    def test_code_is_lifted_out_of_data(self):
        assert coerce_result({"id": "1", "code": 201}) == Success({"id": "1"}, code=201)

    def test_envelope_shaped_dict(self):
        result = coerce_result({"ok": True, "code": 201, "data": {"school": {"id": "s1"}}})
        assert result == Success({"school": {"id": "s1"}}, code=201)

    def test_errors_key_is_validation_failure(self):
        result = coerce_result({"ok": False, "code": 422, "errors": ["bad"]})
        assert result == ValidationFailure(["bad"], code=422)

    def test_error_key_is_failure(self):
        assert coerce_result({"error": "gone", "code": 410}) == Failure("gone", code=410)

    def test_ok_false_without_detail(self):
        assert coerce_result({"ok": False, "code": 401}) == Failure("", code=401)

    def test_envelope_shaped_dict_keeps_list_data(self):
        result = coerce_result({"ok": True, "code": 200, "data": ["a", "b"]})
        assert result == Success(["a", "b"])
        assert normalize(result).to_dict()["data"] == ["a", "b"]

    def test_envelope_shaped_dict_with_null_data(self):
        assert coerce_result({"ok": True, "data": None}) == Success({})

    def test_empty_errors_list_is_success(self):
        assert coerce_result({"errors": []}) == Success({"errors": []})

    def test_non_dict_rejected(self):
        with pytest.raises(TypeError):
            coerce_result(["not", "a", "dict"])


# =============================================================================
# Envelope Tests
# =============================================================================


class TestNormalizeErrors:
    """Tests for normalize_errors()."""

    def test_string(self):
        assert normalize_errors("x") == [{"message": "x"}]

    def test_list_of_strings(self):
        assert normalize_errors(["x"]) == [{"message": "x"}]

    def test_mixed_list(self):
        errors = ["a", {"field": "name", "message": "required"}]
        assert normalize_errors(errors) == [
            {"message": "a"},
            {"field": "name", "message": "required"},
        ]

    def test_single_dict(self):
        assert normalize_errors({"field": "id", "message": "bad"}) == [
            {"field": "id", "message": "bad"}
        ]

    def test_empty(self):
        assert normalize_errors(None) == []
        assert normalize_errors([]) == []


class TestBuildEnvelope:
    """Tests for build_envelope()."""

    def test_ok_defaults_to_200(self):
        envelope = build_envelope(ok=True)
        body = envelope.to_dict()

        assert body["ok"] is True
        assert body["code"] == 200
        assert body["data"] == {}
        assert "errors" not in body
        assert "message" not in body
        assert body["timestamp"]

    def test_failure_defaults_to_400_with_message(self):
        envelope = build_envelope(ok=False)

        assert envelope.code == 400
        assert envelope.message == DEFAULT_FAILURE_MESSAGE

    def test_failure_with_errors_has_no_default_message(self):
        body = build_envelope(ok=False, errors=["x"]).to_dict()

        assert body["errors"] == [{"message": "x"}]
        assert "message" not in body

    def test_envelope_is_immutable(self):
        envelope = build_envelope(ok=True)

        with pytest.raises(AttributeError):
            envelope.code = 500


class TestNormalize:
    """Tests for normalize()."""

    def test_success(self):
        envelope = normalize(Success({"id": "1"}))

        assert envelope.ok is True
        assert envelope.code == 200
        assert envelope.data == {"id": "1"}

    def test_success_keeps_custom_code(self):
        assert normalize(Success({}, code=201)).code == 201

    def test_validation_failure(self):
        envelope = normalize(ValidationFailure(["x"]))

        assert envelope.ok is False
        assert envelope.code == 400
        assert envelope.errors == ({"message": "x"},)

    def test_failure(self):
        envelope = normalize(Failure("School not found", code=404))

        assert envelope.ok is False
        assert envelope.code == 404
        assert envelope.message == "School not found"

    def test_failure_without_message_gets_default(self):
        assert normalize(Failure("", code=401)).message == DEFAULT_FAILURE_MESSAGE

    def test_self_handled_has_no_envelope(self):
        assert normalize(SelfHandled(BypassReason.FILE, response=object())) is None

    def test_bypass_reason_is_enumerated(self):
        assert SelfHandled("stream").reason is BypassReason.STREAM
        with pytest.raises(ValueError):
            SelfHandled("because")

    def test_unknown_variant_rejected(self):
        with pytest.raises(TypeError):
            normalize({"ok": True})
