"""Question variant mapping, rendering and the simulated code runner."""

import random

import pytest

from assessment_hub import models
from assessment_hub.errors import EmptyCodeError, ExecutionUnavailableError
from assessment_hub.services import code_runner
from assessment_hub.services.renderer import (
    CodingQuestion,
    FillBlankQuestion,
    McqQuestion,
    ScenarioQuestion,
    render_question,
    to_variant,
)


def _question(qtype, options=None, **extra):
    return models.Question(
        id=7, type=qtype, question="Prompt", options=options, correct_answer="x", **extra
    )


class TestToVariant:
    @pytest.mark.parametrize(
        "qtype,options,expected",
        [
            ("mcq", ["a", "b"], McqQuestion),
            ("coding", {"template": "def f(): pass"}, CodingQuestion),
            ("fill_blank", None, FillBlankQuestion),
            ("fill-blank", None, FillBlankQuestion),
            ("scenario", None, ScenarioQuestion),
            ("direct_qa", None, ScenarioQuestion),
            ("direct-qa", None, ScenarioQuestion),
            ("drag_drop", ["one", "two"], McqQuestion),
            ("matching", None, FillBlankQuestion),
            ("mcq", [], FillBlankQuestion),
        ],
    )
    def test_every_stored_type_maps_to_one_variant(self, qtype, options, expected):
        assert isinstance(to_variant(_question(qtype, options)), expected)

    def test_coding_variant_reads_template_and_cases(self):
        variant = to_variant(
            _question(
                "coding",
                {"template": "start", "testCases": [{"input": "1", "expected": "2"}]},
                code_language="python",
            )
        )
        assert variant.language == "python"
        assert variant.template == "start"
        assert variant.test_cases == [{"input": "1", "expected": "2"}]


class TestRenderQuestion:
    def test_mcq_choices_are_lettered_and_selected(self):
        view = render_question(McqQuestion(id=1, text="Pick", choices=["red", "green", "blue"]), 0, "green")

        assert view["kind"] == "mcq"
        assert [c["letter"] for c in view["choices"]] == ["A", "B", "C"]
        assert [c["selected"] for c in view["choices"]] == [False, True, False]
        assert view["answered"] is True

    def test_coding_editor_starts_from_template(self):
        variant = CodingQuestion(
            id=2,
            text="Write it",
            template="function f() {}",
            test_cases=[{"input": "1", "expected": "secret", "description": "one"}],
        )
        view = render_question(variant, 3, None)

        assert view["kind"] == "coding"
        assert view["code"] == "function f() {}"
        # Expected outputs are never rendered
        assert view["testCases"] == [{"input": "1", "description": "one"}]

    def test_free_text_counts_characters(self):
        view = render_question(ScenarioQuestion(id=3, text="Explain"), 1, "hello")
        assert view["kind"] == "scenario"
        assert view["characterCount"] == 5

    def test_unknown_variant_is_rejected(self):
        with pytest.raises(TypeError):
            render_question(object(), 0, None)


class TestCodeRunner:
    def test_empty_code_is_refused_before_running(self):
        """Acceptance: blank code yields EMPTY_CODE and executes nothing."""
        # Given: a policy that records whether it ran
        ran = []

        class Recording:
            def run(self, code):
                ran.append(code)

        # When / Then: whitespace-only code is refused
        with pytest.raises(EmptyCodeError) as excinfo:
            code_runner.run_code(Recording(), "   \n\t ")
        assert excinfo.value.status_code == 400
        assert excinfo.value.code == "EMPTY_CODE"
        assert ran == []

    def test_canned_cases_chosen_by_keyword(self):
        assert code_runner.canned_test_cases("Compute the factorial of n")[0]["expected"] == "120"
        assert code_runner.canned_test_cases("Reverse a string")[0]["expected"] == '"olleh"'
        assert code_runner.canned_test_cases("Sum an array")[0]["expected"] == "15"
        assert len(code_runner.canned_test_cases("Something else")) == 3

    def test_short_code_fails_every_case(self):
        policy = code_runner.SimulatedExecution(
            test_cases=code_runner.canned_test_cases("factorial"), failure_rate=0.0
        )
        report = code_runner.run_code(policy, "return 1")

        assert report.mode == "simulated"
        assert report.passed == 0
        assert all(c["actual"] == "undefined" for c in report.cases)

    def test_only_last_case_can_fail(self):
        code = "function factorial(n) { return n <= 1 ? 1 : n * factorial(n - 1); }"
        always_fail = code_runner.SimulatedExecution(
            test_cases=code_runner.canned_test_cases("factorial"),
            failure_rate=1.0,
            rng=random.Random(1),
        )
        report = code_runner.run_code(always_fail, code)

        assert [c["passed"] for c in report.cases] == [True, True, True, False]
        assert report.passed == 3 and report.total == 4

    def test_question_cases_override_canned_ones(self):
        variant = CodingQuestion(id=1, text="factorial", test_cases=[{"input": "2", "expected": "2"}])
        policy = code_runner.policy_for(variant, failure_rate=0.0)
        assert policy.test_cases == [{"input": "2", "expected": "2"}]

    def test_sandboxed_uses_registered_backend(self):
        calls = []

        class EchoBackend:
            def run(self, code, language, test_cases):
                calls.append((language, len(test_cases)))
                return code_runner.ExecutionReport(mode="sandboxed", passed=1, total=1)

        code_runner.register_sandbox_backend(EchoBackend())
        try:
            variant = CodingQuestion(id=1, text="factorial", language="python")
            report = code_runner.run_code(code_runner.policy_for(variant, mode="sandboxed"), "print(1)")
        finally:
            code_runner.register_sandbox_backend(None)

        assert report.mode == "sandboxed"
        assert calls == [("python", 4)]

    def test_sandboxed_without_backend_is_unavailable(self):
        variant = CodingQuestion(id=1, text="factorial")
        policy = code_runner.policy_for(variant, mode="sandboxed")

        with pytest.raises(ExecutionUnavailableError) as excinfo:
            code_runner.run_code(policy, "print('this is long enough code')")
        assert excinfo.value.status_code == 501
