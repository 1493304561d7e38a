from __future__ import annotations
import re
from typing import Optional, Tuple

from ..core.models import Status

# Heuristic thôi: sandbox có thể kill thẳng mà không để lại dấu vết gì trong stderr.
_OOM_PATTERNS = re.compile(
    r"MemoryError"
    r"|std::bad_alloc"
    r"|java\.lang\.OutOfMemoryError"
    r"|failed to allocate memory"
    r"|NoMemoryError"
    r"|JavaScript heap out of memory"
    r"|Cannot allocate memory",
)

TIMEOUT_EXIT_CODE = 124
SIGXFSZ_EXIT_CODE = 128 + 25


def outputs_match(actual: str, expected: str) -> bool:
    return (actual or "").strip() == (expected or "").strip()


def looks_like_oom(stderr: str) -> bool:
    return bool(stderr) and _OOM_PATTERNS.search(stderr) is not None


def classify(
    declared: Status,
    exit_code: int,
    stderr: str,
    actual_output: str,
    expected_output: str,
) -> Tuple[Status, bool, Optional[str]]:
    """
    Trả về (status, passed, error_message) cho một test case, theo thứ tự ưu tiên:
      1. Success + output khớp            -> Success, passed
      2. Success + output lệch            -> Success, không passed (Wrong Answer)
      3. sandbox báo timeout              -> Time Limit Exceeded
      4. sandbox báo OOM / stderr giống OOM -> Memory Limit Exceeded
      5. còn lại                          -> Runtime Error
    """
    stderr = stderr or ""
    diag = stderr.strip() or None

    if declared in (Status.COMPILATION_ERROR, Status.INTERNAL_ERROR):
        return declared, False, diag or declared.value

    if declared == Status.SUCCESS and exit_code == 0:
        if outputs_match(actual_output, expected_output):
            return Status.SUCCESS, True, diag
        return Status.SUCCESS, False, diag or "Wrong Answer"

    if declared == Status.TIME_LIMIT_EXCEEDED or exit_code == TIMEOUT_EXIT_CODE:
        return Status.TIME_LIMIT_EXCEEDED, False, diag or Status.TIME_LIMIT_EXCEEDED.value

    if declared == Status.MEMORY_LIMIT_EXCEEDED or looks_like_oom(stderr):
        return Status.MEMORY_LIMIT_EXCEEDED, False, diag or Status.MEMORY_LIMIT_EXCEEDED.value

    if exit_code == SIGXFSZ_EXIT_CODE:
        return Status.RUNTIME_ERROR, False, diag or "output limit exceeded"
    return Status.RUNTIME_ERROR, False, diag or f"{Status.RUNTIME_ERROR.value} (exit code {exit_code})"
