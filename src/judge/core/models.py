from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import InvalidSubmission

DEFAULT_TIME_LIMIT = 2
DEFAULT_MEMORY_LIMIT = 256


class Status(str, Enum):
    SUCCESS = "Success"
    TIME_LIMIT_EXCEEDED = "Time Limit Exceeded"
    MEMORY_LIMIT_EXCEEDED = "Memory Limit Exceeded"
    RUNTIME_ERROR = "Runtime Error"
    COMPILATION_ERROR = "Compilation Error"
    INTERNAL_ERROR = "Internal Error"


@dataclass(frozen=True)
class TestCase:
    __test__ = False  # không phải class test của pytest

    input: str
    expected_output: str


def _positive_int(name: str, value: Any) -> int:
    # form params thường gửi "2" thay vì 2
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value)
    # bool là subclass của int, loại ra
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidSubmission(f"{name} must be a positive integer")
    return value


@dataclass
class Submission:
    code: str
    language: str
    test_cases: List[TestCase]
    time_limit: int = DEFAULT_TIME_LIMIT     # giây
    memory_limit: int = DEFAULT_MEMORY_LIMIT  # MB

    def __post_init__(self):
        if not isinstance(self.code, str) or not self.code.strip():
            raise InvalidSubmission("Missing required parameters: code")
        if not isinstance(self.language, str) or not self.language.strip():
            raise InvalidSubmission("Missing required parameters: language")
        if not self.test_cases:
            raise InvalidSubmission("Missing required parameters: test_cases")
        for i, tc in enumerate(self.test_cases, 1):
            if not isinstance(tc, TestCase):
                raise InvalidSubmission(f"test case {i} is malformed")
        self.language = self.language.strip().lower()
        self.time_limit = _positive_int("time_limit", self.time_limit)
        self.memory_limit = _positive_int("memory_limit", self.memory_limit)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Submission":
        """
        Nhận payload dạng request gốc:
          {submission_code|code, language, time_limit?, memory_limit?,
           test_cases: [{input, expected_output}, ...]}
        """
        if not isinstance(payload, dict):
            raise InvalidSubmission("submission payload must be an object")

        raw_cases = payload.get("test_cases")
        if not isinstance(raw_cases, list) or not raw_cases:
            raise InvalidSubmission("Missing required parameters: test_cases")

        cases: List[TestCase] = []
        for i, tc in enumerate(raw_cases, 1):
            if not isinstance(tc, dict):
                raise InvalidSubmission(f"test case {i} is malformed")
            inp, exp = tc.get("input"), tc.get("expected_output")
            if not isinstance(inp, str) or not isinstance(exp, str):
                raise InvalidSubmission(f"test case {i} must have string input and expected_output")
            cases.append(TestCase(input=inp, expected_output=exp))

        code = payload.get("submission_code") or payload.get("code")
        time_limit = payload.get("time_limit")
        memory_limit = payload.get("memory_limit")
        return cls(
            code=code,
            language=payload.get("language"),
            test_cases=cases,
            time_limit=DEFAULT_TIME_LIMIT if time_limit is None else time_limit,
            memory_limit=DEFAULT_MEMORY_LIMIT if memory_limit is None else memory_limit,
        )


@dataclass(frozen=True)
class LanguageProfile:
    language: str
    source_file: str
    executable_file: str        # bằng source_file với ngôn ngữ thông dịch
    image: str
    compile_cmd: Optional[Tuple[str, ...]]
    run_cmd: Tuple[str, ...]

    @property
    def compiled(self) -> bool:
        return self.compile_cmd is not None


@dataclass
class Limits:
    memory_mb: int
    pids: int
    nofile: int
    cpus: float
    wall_timeout_seconds: float
    output_limit_bytes: int


@dataclass
class ExecutionResult:
    test_case_number: int
    input: str
    expected_output: str
    actual_output: str
    time_taken: float
    memory_used: float
    status: Status
    error_message: Optional[str]
    passed: bool

    def as_dict(self) -> Dict[str, Any]:
        return {
            "test_case_number": self.test_case_number,
            "input": self.input,
            "expected_output": self.expected_output,
            "actual_output": self.actual_output,
            "time_taken": round(self.time_taken, 3),
            "memory_used": self.memory_used,
            "status": self.status.value,
            "error_message": self.error_message,
            "passed": self.passed,
        }


@dataclass
class SandboxInvocation:
    workdir: Path     # đã bị xoá khi runner trả về, chỉ giữ để log
    script: str
    stdout: str
    stderr: str
    exit_code: int
    timed_out: bool = False
    duration_s: float = 0.0
    meta: Dict[str, Any] = field(default_factory=dict)
