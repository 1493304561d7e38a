import pytest

from judge.core.models import SandboxInvocation, Submission, TestCase
from judge.runner.base import Runner
from judge.settings import Settings


class FakeRunner(Runner):
    """Trả về stdout dựng sẵn thay vì chạy sandbox thật."""

    name = "fake"

    def __init__(self, stdout="", stderr="", exit_code=0, timed_out=False, exc=None):
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code
        self.timed_out = timed_out
        self.exc = exc
        self.calls = []

    def execute(self, submission, profile, script):
        self.calls.append((submission, profile, script))
        if self.exc is not None:
            raise self.exc
        return SandboxInvocation(
            workdir=None,
            script=script,
            stdout=self.stdout,
            stderr=self.stderr,
            exit_code=self.exit_code,
            timed_out=self.timed_out,
        )


@pytest.fixture
def fake_runner():
    return FakeRunner


@pytest.fixture
def settings():
    return Settings(images={}, output_limit_bytes=65536, compile_allowance_s=30)


@pytest.fixture
def make_submission():
    def _make(code="print(input())", language="python", cases=None, time_limit=2, memory_limit=256):
        if cases is None:
            cases = [("5", "5")]
        return Submission(
            code=code,
            language=language,
            test_cases=[TestCase(input=i, expected_output=o) for i, o in cases],
            time_limit=time_limit,
            memory_limit=memory_limit,
        )
    return _make
