import base64
import json

import pytest

from judge.core.errors import ProtocolError
from judge.core.models import Status
from judge.services.protocol import (
    TestCaseRecord,
    encode_compilation_error,
    encode_record,
    parse_record,
    parse_stream,
)


def b64(s):
    return base64.b64encode(s.encode()).decode()


def raw_record(**overrides):
    data = {
        "v": 1, "index": 1, "status": "Success", "exit_code": 0, "time": "0.010",
        "memory": 0, "truncated": False, "input_b64": b64("5"),
        "expected_output_b64": b64("5"), "output_b64": b64("5\n"), "stderr_b64": "",
    }
    data.update(overrides)
    return "JUDGE_TEST_CASE_RESULT: " + json.dumps(data)


def test_full_stream_with_program_noise():
    stdout = "\n".join([
        "some banner from the image",
        "JUDGE_RESULTS_START",
        raw_record(index=1),
        "RESULTS_END  <- not a directive",
        raw_record(index=2, status="Runtime Error", exit_code=1, stderr_b64=b64("boom")),
        "JUDGE_RESULTS_END",
    ])
    parsed = parse_stream(stdout)
    assert parsed.started and parsed.finished
    assert parsed.compilation_error is None
    assert sorted(parsed.records) == [1, 2]
    assert parsed.records[1].output == "5\n"
    assert parsed.records[2].status == Status.RUNTIME_ERROR
    assert parsed.records[2].stderr == "boom"


def test_bare_decimal_time_is_normalized():
    rec = parse_record(raw_record(time=".482")[len("JUDGE_TEST_CASE_RESULT: "):])
    assert rec.time == "0.482"
    assert rec.seconds == pytest.approx(0.482)


def test_numeric_time_is_normalized():
    rec = parse_record(json.dumps({
        "v": 1, "index": 3, "status": "Success", "time": 1.5,
    }))
    assert rec.time == "1.500"


@pytest.mark.parametrize("overrides", [
    {"v": 2},
    {"index": 0},
    {"status": "Wrong Answer"},
    {"time": "-0.1"},
    {"time": "abc"},
    {"output_b64": "not base64!!"},
    {"memory": -1},
    {"extra_field": 1},
])
def test_schema_mismatch_raises(overrides):
    payload = raw_record(**overrides)[len("JUDGE_TEST_CASE_RESULT: "):]
    with pytest.raises(ProtocolError):
        parse_record(payload)


def test_rejected_record_occupies_its_ordinal_slot():
    stdout = "\n".join([
        "JUDGE_RESULTS_START",
        raw_record(index=1),
        "JUDGE_TEST_CASE_RESULT: {not json",
        raw_record(index=3),
        "JUDGE_RESULTS_END",
    ])
    parsed = parse_stream(stdout)
    assert isinstance(parsed.records[1], TestCaseRecord)
    assert isinstance(parsed.records[2], ProtocolError)
    assert isinstance(parsed.records[3], TestCaseRecord)
    assert len(parsed.rejected) == 1


def test_records_placed_by_index_not_order():
    stdout = "\n".join([
        "JUDGE_RESULTS_START",
        raw_record(index=2, output_b64=b64("two")),
        raw_record(index=1, output_b64=b64("one")),
    ])
    parsed = parse_stream(stdout)
    assert parsed.records[1].output == "one"
    assert parsed.records[2].output == "two"
    assert not parsed.finished


def test_second_record_for_same_index_is_a_conflict():
    # chương trình ghi thẳng record giả vào stdout của driver, trước record thật
    stdout = "\n".join([
        "JUDGE_RESULTS_START",
        raw_record(index=1, output_b64=b64("42")),
        raw_record(index=1, output_b64=b64("wrong\n")),
        raw_record(index=1, output_b64=b64("42")),
        raw_record(index=2),
        "JUDGE_RESULTS_END",
    ])
    parsed = parse_stream(stdout)
    assert isinstance(parsed.records[1], ProtocolError)
    assert "conflicting" in str(parsed.records[1])
    assert isinstance(parsed.records[2], TestCaseRecord)


def test_compilation_error_json_and_plain():
    line = encode_compilation_error("solution.cpp:3:5: error: expected ';'\n  return 0\n")
    parsed = parse_stream(line + "\n")
    assert "expected ';'" in parsed.compilation_error
    assert not parsed.saw_test_markers

    parsed = parse_stream("JUDGE_COMPILATION_ERROR: Main.java:1: error: oops\n")
    assert parsed.compilation_error == "Main.java:1: error: oops"


def test_encode_record_matches_schema():
    line = encode_record(4, Status.TIME_LIMIT_EXCEEDED, time=2.0041, memory=3.5,
                         input="a", expected_output="b", output="", stderr="killed")
    rec = parse_stream(line).records[4]
    assert rec.status == Status.TIME_LIMIT_EXCEEDED
    assert rec.time == "2.004"
    assert rec.memory == 3.5
    assert rec.stderr == "killed"


def test_empty_stream():
    parsed = parse_stream("")
    assert not parsed.started
    assert not parsed.saw_test_markers
