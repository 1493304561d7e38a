import pytest
import requests

from judge.core.errors import InfrastructureError
from judge.core.languages import resolve
from judge.core.models import Status
from judge.runner.remote_runner import RemoteRunner, map_remote_status
from judge.services.judge_service import JudgeService


class FakeResponse:
    def __init__(self, data, status_code=200):
        self.data = data
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        return self.data


class FakeSession:
    def __init__(self, replies):
        self.replies = list(replies)
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json, timeout))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def test_posts_each_test_case_and_builds_results(make_submission, settings):
    session = FakeSession([
        FakeResponse({"output": "5\n", "time": 0.0123, "memory": 9.5, "status": "Success"}),
        FakeResponse({"output": "", "time": 2.0, "memory": 0, "status": "timeout"}),
    ])
    runner = RemoteRunner("http://runner:5000/run", timeout_s=10, session=session)
    svc = JudgeService(runner, settings)
    results = svc.run_batch(make_submission(cases=[("5", "5"), ("7", "7")], time_limit=2))

    assert [p[1]["stdin"] for p in session.posts] == ["5", "7"]
    assert session.posts[0][1]["language"] == "python"
    assert session.posts[0][2] == 12

    assert results[0].status == Status.SUCCESS and results[0].passed
    assert results[0].time_taken == pytest.approx(0.012)
    assert results[0].memory_used == 9.5
    assert results[1].status == Status.TIME_LIMIT_EXCEEDED and not results[1].passed


def test_unreachable_service_is_infrastructure_error(make_submission):
    session = FakeSession([requests.ConnectionError("refused")])
    runner = RemoteRunner("http://nowhere/run", session=session)
    with pytest.raises(InfrastructureError):
        runner.execute(make_submission(), resolve("python"), "")


def test_later_failure_only_affects_that_case(make_submission, settings):
    session = FakeSession([
        FakeResponse({"output": "1", "time": 0.1, "status": "Success"}),
        requests.ConnectionError("reset"),
        FakeResponse({}, status_code=500),
        FakeResponse({"output": "4", "time": 0.1, "status": "Something Odd"}),
    ])
    svc = JudgeService(RemoteRunner("http://runner/run", session=session), settings)
    results = svc.run_batch(make_submission(cases=[("1", "1"), ("2", "2"), ("3", "3"), ("4", "4")]))

    assert [r.status for r in results] == [
        Status.SUCCESS, Status.INTERNAL_ERROR, Status.INTERNAL_ERROR, Status.INTERNAL_ERROR,
    ]
    assert "reset" in results[1].error_message
    assert "Something Odd" in results[3].error_message
    assert [r.test_case_number for r in results] == [1, 2, 3, 4]


def test_infrastructure_error_yields_full_internal_error_table(make_submission, settings):
    session = FakeSession([requests.ConnectionError("refused")])
    svc = JudgeService(RemoteRunner("http://nowhere/run", session=session), settings)
    results = svc.run_batch(make_submission(cases=[("1", "1"), ("2", "2")]))
    assert [r.status for r in results] == [Status.INTERNAL_ERROR] * 2
    assert all("unreachable" in r.error_message for r in results)


def test_compilation_error_stops_after_first_case(make_submission, settings):
    session = FakeSession([
        FakeResponse({"output": "", "time": 0, "status": "Compilation Error",
                      "error_message": "solution.cpp:3: error: expected ';'"}),
    ])
    svc = JudgeService(RemoteRunner("http://runner/run", session=session), settings)
    results = svc.run_batch(make_submission(language="cpp", cases=[("1", "1"), ("2", "2"), ("3", "3")]))

    assert len(session.posts) == 1
    assert [r.status for r in results] == [Status.COMPILATION_ERROR] * 3
    assert all("expected ';'" in r.error_message for r in results)


def test_negative_time_from_service_is_clamped(make_submission, settings):
    session = FakeSession([FakeResponse({"output": "5", "time": -0.3, "status": "Success"})])
    results = JudgeService(RemoteRunner("http://runner/run", session=session), settings).run_batch(
        make_submission()
    )
    assert results[0].passed
    assert results[0].time_taken == 0.0


@pytest.mark.parametrize("raw,expected", [
    ("Success", Status.SUCCESS),
    ("Runtime Error", Status.RUNTIME_ERROR),
    ("compilation_error", Status.COMPILATION_ERROR),
    ("Service Error", Status.INTERNAL_ERROR),
    (None, Status.INTERNAL_ERROR),
])
def test_map_remote_status(raw, expected):
    assert map_remote_status(raw) == expected
