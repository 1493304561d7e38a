from __future__ import annotations
from typing import List, Optional

from ..core.errors import InfrastructureError, ProtocolError
from ..core.languages import resolve
from ..core.models import ExecutionResult, SandboxInvocation, Status, Submission, TestCase
from ..logging import get_logger
from ..runner.base import Runner
from ..runner.driver import generate
from ..settings import Settings
from .classifier import classify
from .protocol import ParsedStream, TestCaseRecord, parse_stream

log = get_logger(__name__)


def output_limit_for(test_cases: List[TestCase], floor: int) -> int:
    """Giới hạn output của cả batch: không bao giờ nhỏ hơn expected_output lớn nhất cộng thêm floor."""
    largest = max((len(tc.expected_output.encode("utf-8")) for tc in test_cases), default=0)
    return floor + largest


def _uniform(test_cases: List[TestCase], status: Status, message: str) -> List[ExecutionResult]:
    return [
        ExecutionResult(
            test_case_number=i,
            input=tc.input,
            expected_output=tc.expected_output,
            actual_output="",
            time_taken=0.0,
            memory_used=0.0,
            status=status,
            error_message=message,
            passed=False,
        )
        for i, tc in enumerate(test_cases, 1)
    ]


class JudgeService:
    """
    Engine: resolve profile -> sinh driver -> runner chạy sandbox -> parse stream -> classify.
    Runner được inject từ bên gọi (docker local hoặc remote).
    """

    def __init__(self, runner: Runner, settings: Optional[Settings] = None):
        self.runner = runner
        self.settings = settings or Settings()

    def run_batch(self, submission: Submission) -> List[ExecutionResult]:
        """
        Luôn trả về đúng len(test_cases) kết quả, theo thứ tự input.
        Chỉ InvalidSubmission / UnsupportedLanguage được raise ra ngoài (trước khi chạy sandbox).
        """
        profile = resolve(submission.language, self.settings.images)

        try:
            script = generate(
                profile,
                profile.language,
                submission.time_limit,
                output_limit_bytes=output_limit_for(submission.test_cases, self.settings.output_limit_bytes),
                compile_timeout_s=self.settings.compile_allowance_s,
            )
            inv = self.runner.execute(submission, profile, script)
            results = self.assemble(submission.test_cases, inv)
        except InfrastructureError as e:
            log.error("batch_infrastructure_error", runner=self.runner.name, error=str(e))
            return _uniform(submission.test_cases, Status.INTERNAL_ERROR, str(e))
        except Exception as e:
            # lỗi nội bộ (driver, parse, runner...) vẫn phải ra bảng kết quả đầy đủ
            log.exception("batch_internal_error", runner=self.runner.name)
            return _uniform(submission.test_cases, Status.INTERNAL_ERROR, f"{type(e).__name__}: {e}")

        log.info(
            "batch_finished",
            language=profile.language,
            tests=len(results),
            passed=sum(r.passed for r in results),
        )
        return results

    def assemble(self, test_cases: List[TestCase], inv: SandboxInvocation) -> List[ExecutionResult]:
        parsed = parse_stream(inv.stdout)

        if not parsed.saw_test_markers:
            # không có marker test nào: lỗi biên dịch hoặc lỗi hệ thống, áp cho mọi test case
            if parsed.compilation_error is not None:
                return _uniform(test_cases, Status.COMPILATION_ERROR, parsed.compilation_error or "Compilation failed")
            if inv.timed_out:
                fallback = "sandbox watchdog expired"
            elif parsed.started:
                fallback = "sandbox stopped before the first test case"
            else:
                fallback = "Unknown error"
            msg = inv.stderr.strip() or fallback
            log.error("batch_no_results", exit_code=inv.exit_code, timed_out=inv.timed_out)
            return _uniform(test_cases, Status.INTERNAL_ERROR, msg)

        extra = sorted(k for k in parsed.records if k > len(test_cases))
        if extra:
            log.warning("protocol_extra_records", indices=extra, expected=len(test_cases))

        return [self._one(i, tc, parsed, inv) for i, tc in enumerate(test_cases, 1)]

    def _one(self, i: int, tc: TestCase, parsed: ParsedStream, inv: SandboxInvocation) -> ExecutionResult:
        rec = parsed.records.get(i)

        if not isinstance(rec, TestCaseRecord):
            if isinstance(rec, ProtocolError):
                msg = str(rec)
            elif inv.timed_out:
                msg = "no result reported: sandbox watchdog expired"
            elif not parsed.finished:
                msg = "no result reported: sandbox output ended early"
            else:
                msg = "no result reported for this test case"
            return ExecutionResult(
                test_case_number=i,
                input=tc.input,
                expected_output=tc.expected_output,
                actual_output="",
                time_taken=0.0,
                memory_used=0.0,
                status=Status.INTERNAL_ERROR,
                error_message=msg,
                passed=False,
            )

        output = rec.output
        status, passed, error = classify(rec.status, rec.exit_code, rec.stderr, output, tc.expected_output)
        if rec.truncated:
            error = f"{error}; output truncated" if error else "output truncated"
        return ExecutionResult(
            test_case_number=i,
            input=tc.input,
            expected_output=tc.expected_output,
            actual_output=output,
            time_taken=rec.seconds,
            memory_used=rec.memory,
            status=status,
            error_message=error,
            passed=passed,
        )
