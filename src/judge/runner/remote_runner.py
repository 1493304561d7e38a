from __future__ import annotations
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from ..core.errors import InfrastructureError
from ..core.models import LanguageProfile, SandboxInvocation, Status, Submission
from ..core.utils import format_elapsed
from ..logging import get_logger
from ..services.protocol import RESULTS_END, RESULTS_START, encode_compilation_error, encode_record
from .base import Runner

log = get_logger(__name__)

_REMOTE_STATUS = {s.value.lower(): s for s in Status}
_REMOTE_STATUS.update({
    "ok": Status.SUCCESS,
    "success": Status.SUCCESS,
    "timeout": Status.TIME_LIMIT_EXCEEDED,
    "runtime_error": Status.RUNTIME_ERROR,
    "compilation_error": Status.COMPILATION_ERROR,
    "memory_limit_exceeded": Status.MEMORY_LIMIT_EXCEEDED,
})


def map_remote_status(value: Any) -> Status:
    return _REMOTE_STATUS.get(str(value or "").strip().lower(), Status.INTERNAL_ERROR)


class RemoteRunner(Runner):
    """
    Gửi từng test case tới runner service: POST {code, language, stdin}
    -> {output, time, memory, status, error_message?}.
    Kết quả được dựng lại thành đúng line protocol của driver để engine
    parse/classify như runner docker. Không dùng driver script.
    """

    name = "remote"

    def __init__(self, url: str, timeout_s: float = 10.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, s) -> "RemoteRunner":
        return cls(url=s.remote_url, timeout_s=s.remote_timeout_s)

    def _post(self, submission: Submission, profile: LanguageProfile, stdin: str) -> Dict[str, Any]:
        payload = {
            "code": submission.code,
            "language": profile.language,
            "stdin": stdin,
            "time_limit": submission.time_limit,
            "memory_limit": submission.memory_limit,
        }
        resp = self.session.post(self.url, json=payload, timeout=self.timeout_s + submission.time_limit)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError("runner response is not an object")
        return data

    def execute(self, submission: Submission, profile: LanguageProfile, script: str) -> SandboxInvocation:
        start = time.time()
        lines: List[str] = [RESULTS_START]
        errors: List[str] = []

        for i, tc in enumerate(submission.test_cases, 1):
            try:
                data = self._post(submission, profile, tc.input)
            except (requests.RequestException, ValueError) as e:
                if i == 1 and isinstance(e, requests.ConnectionError):
                    # service không tồn tại: lỗi hạ tầng, không phải lỗi bài nộp
                    raise InfrastructureError(f"runner service unreachable: {e}") from e
                log.error("remote_runner_request_failed", url=self.url, test_case=i, error=str(e))
                errors.append(str(e))
                data = {"status": Status.INTERNAL_ERROR.value, "error_message": str(e)}

            status = map_remote_status(data.get("status"))
            try:
                elapsed = float(data.get("time") or 0)
                memory = max(0.0, float(data.get("memory") or 0))
            except (TypeError, ValueError):
                elapsed, memory = 0.0, 0.0
            stderr = data.get("error_message") or data.get("stderr") or ""
            if i == 1 and status == Status.COMPILATION_ERROR:
                # compile hỏng thì test nào cũng vậy; không gửi các test còn lại
                diagnostic = str(stderr or data.get("output") or "Compilation failed")
                return SandboxInvocation(
                    workdir=Path("."),
                    script=script,
                    stdout=encode_compilation_error(diagnostic) + "\n",
                    stderr="",
                    exit_code=0,
                    duration_s=time.time() - start,
                    meta={"url": self.url},
                )
            if status == Status.INTERNAL_ERROR and not stderr:
                stderr = f"runner status: {data.get('status')!r}"

            lines.append(encode_record(
                i,
                status,
                time=format_elapsed(elapsed),
                memory=memory,
                input=tc.input,
                expected_output=tc.expected_output,
                output=str(data.get("output") or ""),
                stderr=str(stderr),
            ))

        lines.append(RESULTS_END)
        return SandboxInvocation(
            workdir=Path("."),
            script=script,
            stdout="\n".join(lines) + "\n",
            stderr="\n".join(errors),
            exit_code=0,
            duration_s=time.time() - start,
            meta={"url": self.url},
        )
