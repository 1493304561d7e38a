from __future__ import annotations
import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.errors import ProtocolError
from ..core.models import Status
from ..core.utils import normalize_elapsed
from ..logging import get_logger

log = get_logger(__name__)

PROTOCOL_VERSION = 1

# prefix JUDGE_ dành riêng cho directive; output của chương trình không đi ra stream này
COMPILATION_ERROR = "JUDGE_COMPILATION_ERROR:"
RESULTS_START = "JUDGE_RESULTS_START"
TEST_CASE_RESULT = "JUDGE_TEST_CASE_RESULT:"
RESULTS_END = "JUDGE_RESULTS_END"


def _b64decode(value: str) -> str:
    try:
        raw = base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError(f"invalid base64 payload: {e}") from e
    return raw.decode("utf-8", errors="replace")


class TestCaseRecord(BaseModel):
    """Schema v1 của một dòng TEST_CASE_RESULT."""

    __test__ = False
    model_config = ConfigDict(extra="forbid")

    v: Literal[1]
    index: int = Field(ge=1)
    status: Status
    exit_code: int = 0
    time: str
    memory: float = Field(default=0.0, ge=0)
    truncated: bool = False
    input_b64: str = ""
    expected_output_b64: str = ""
    output_b64: str = ""
    stderr_b64: str = ""

    @field_validator("time", mode="before")
    @classmethod
    def _normalize_time(cls, value):
        return normalize_elapsed(value)

    @field_validator("input_b64", "expected_output_b64", "output_b64", "stderr_b64")
    @classmethod
    def _check_b64(cls, value: str) -> str:
        _b64decode(value)
        return value

    @property
    def input(self) -> str:
        return _b64decode(self.input_b64)

    @property
    def expected_output(self) -> str:
        return _b64decode(self.expected_output_b64)

    @property
    def output(self) -> str:
        return _b64decode(self.output_b64)

    @property
    def stderr(self) -> str:
        return _b64decode(self.stderr_b64)

    @property
    def seconds(self) -> float:
        return float(self.time)


@dataclass
class ParsedStream:
    compilation_error: Optional[str] = None
    started: bool = False
    finished: bool = False
    # slot (1-based) -> record hợp lệ hoặc ProtocolError của dòng hỏng
    records: Dict[int, Union[TestCaseRecord, ProtocolError]] = field(default_factory=dict)
    rejected: List[str] = field(default_factory=list)

    @property
    def saw_test_markers(self) -> bool:
        return bool(self.records) or bool(self.rejected)


def encode_record(
    index: int,
    status: Union[Status, str],
    *,
    time,
    exit_code: int = 0,
    memory: float = 0.0,
    input: str = "",
    expected_output: str = "",
    output: str = "",
    stderr: str = "",
    truncated: bool = False,
) -> str:
    """Dựng một dòng TEST_CASE_RESULT (runner remote dùng để nói cùng protocol)."""
    enc = lambda s: base64.b64encode((s or "").encode("utf-8")).decode("ascii")
    payload = {
        "v": PROTOCOL_VERSION,
        "index": index,
        "status": Status(status).value,
        "exit_code": exit_code,
        "time": normalize_elapsed(time),
        "memory": memory,
        "truncated": truncated,
        "input_b64": enc(input),
        "expected_output_b64": enc(expected_output),
        "output_b64": enc(output),
        "stderr_b64": enc(stderr),
    }
    return f"{TEST_CASE_RESULT} {json.dumps(payload, separators=(',', ':'))}"


def encode_compilation_error(diagnostic: str) -> str:
    b64 = base64.b64encode(diagnostic.encode("utf-8")).decode("ascii")
    return f'{COMPILATION_ERROR} {json.dumps({"v": PROTOCOL_VERSION, "diagnostic_b64": b64})}'


def _parse_compilation_error(payload: str) -> str:
    payload = payload.strip()
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        # dạng text thô (driver cũ)
        return payload
    if isinstance(data, dict) and isinstance(data.get("diagnostic_b64"), str):
        try:
            return _b64decode(data["diagnostic_b64"]).strip()
        except ValueError:
            return payload
    return payload


def parse_record(payload: str) -> TestCaseRecord:
    try:
        return TestCaseRecord.model_validate_json(payload)
    except ValidationError as e:
        raise ProtocolError(f"malformed test case record: {e.error_count()} error(s): {e.errors()[0]['msg']}") from e


def parse_stream(stdout: str) -> ParsedStream:
    """
    Đọc stdout của sandbox, chỉ quan tâm các dòng có prefix JUDGE_.
    - record hợp lệ được đặt vào slot theo field index
    - record hỏng chiếm slot theo thứ tự xuất hiện (ordinal) và mang ProtocolError
    - index trùng: driver chỉ in đúng một record cho mỗi index, nên bản thứ hai là
      do chương trình tự ghi vào stdout của driver; slot đó thành ProtocolError
      và mọi record sau cho index này bị bỏ qua
    """
    parsed = ParsedStream()
    ordinal = 0
    conflicted = set()

    for raw_line in (stdout or "").splitlines():
        line = raw_line.rstrip("\r")
        if not line:
            continue

        if line.startswith(COMPILATION_ERROR):
            parsed.compilation_error = _parse_compilation_error(line[len(COMPILATION_ERROR):])
        elif line == RESULTS_START:
            parsed.started = True
        elif line == RESULTS_END:
            parsed.finished = True
        elif line.startswith(TEST_CASE_RESULT):
            ordinal += 1
            payload = line[len(TEST_CASE_RESULT):].strip()
            try:
                rec = parse_record(payload)
            except ProtocolError as e:
                log.warning("protocol_record_rejected", ordinal=ordinal, error=str(e))
                parsed.rejected.append(str(e))
                parsed.records.setdefault(ordinal, e)
                continue
            if rec.index in conflicted:
                continue
            if isinstance(parsed.records.get(rec.index), TestCaseRecord):
                log.warning("protocol_duplicate_index", index=rec.index)
                conflicted.add(rec.index)
                parsed.records[rec.index] = ProtocolError(
                    f"conflicting records for test case {rec.index}: result cannot be trusted"
                )
                continue
            if rec.index != ordinal:
                log.warning("protocol_out_of_order", index=rec.index, ordinal=ordinal)
            parsed.records[rec.index] = rec
        # các dòng khác: bỏ qua

    return parsed
