from __future__ import annotations
import subprocess
import time
from pathlib import Path
from typing import List, Optional

from ..core.errors import InfrastructureError
from ..core.models import LanguageProfile, Limits, SandboxInvocation, Submission
from ..isolation.docker import kill_command, wrap_with_docker, CONTAINER_WORKDIR
from ..logging import get_logger
from ..services.workspace import ephemeral_workspace, materialize
from .base import Runner
from .driver import SCRIPT_NAME, TESTS_DIR

log = get_logger(__name__)

# docker run tự nó lỗi (không tạo được container, không exec được entrypoint)
_DOCKER_FAILURE_CODES = {125: "docker_run_failed", 126: "entrypoint_not_executable", 127: "entrypoint_not_found"}


def _partial(data) -> str:
    # TimeoutExpired giữ output dạng bytes kể cả khi Popen chạy text mode
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class DockerRunner(Runner):
    name = "docker"

    def __init__(
        self,
        work_dir: Path = Path("/tmp/judge"),
        docker_bin: str = "docker",
        *,
        pids: int = 64,
        nofile: int = 1024,
        cpus: float = 1.0,
        output_limit_bytes: int = 64 * 1024,
        compile_allowance_s: float = 30.0,
        startup_allowance_s: float = 10.0,
        seccomp_profile: Optional[Path] = None,
        run_as_host_user: bool = True,
        kill_grace_s: float = 5.0,
    ):
        self.work_dir = Path(work_dir)
        self.docker_bin = docker_bin
        self.pids = pids
        self.nofile = nofile
        self.cpus = cpus
        self.output_limit_bytes = output_limit_bytes
        self.compile_allowance_s = compile_allowance_s
        self.startup_allowance_s = startup_allowance_s
        self.seccomp_profile = seccomp_profile
        self.run_as_host_user = run_as_host_user
        self.kill_grace_s = kill_grace_s

    @classmethod
    def from_settings(cls, s) -> "DockerRunner":
        return cls(
            work_dir=s.work_dir,
            docker_bin=s.docker_bin,
            pids=s.pids,
            nofile=s.nofile,
            cpus=s.cpus,
            output_limit_bytes=s.output_limit_bytes,
            compile_allowance_s=s.compile_allowance_s,
            startup_allowance_s=s.startup_allowance_s,
            seccomp_profile=s.seccomp_profile,
            run_as_host_user=s.run_as_host_user,
        )

    def limits_for(self, submission: Submission) -> Limits:
        # watchdog ngoài: time_limit * số test + thời gian compile + khởi động container
        wall = (
            submission.time_limit * len(submission.test_cases)
            + self.compile_allowance_s
            + self.startup_allowance_s
        )
        return Limits(
            memory_mb=submission.memory_limit,
            pids=self.pids,
            nofile=self.nofile,
            cpus=self.cpus,
            wall_timeout_seconds=wall,
            output_limit_bytes=self.output_limit_bytes,
        )

    def execute(self, submission: Submission, profile: LanguageProfile, script: str) -> SandboxInvocation:
        limits = self.limits_for(submission)
        try:
            with ephemeral_workspace(self.work_dir) as ws:
                materialize(ws, profile, submission.code, submission.test_cases, script,
                            script_name=SCRIPT_NAME, tests_dir=TESTS_DIR)
                name = f"judge-{ws.name}"
                argv = wrap_with_docker(
                    ["/bin/bash", f"{CONTAINER_WORKDIR}/{SCRIPT_NAME}"],
                    ws,
                    limits,
                    profile.image,
                    name,
                    docker_bin=self.docker_bin,
                    seccomp_profile=self.seccomp_profile,
                    run_as_host_user=self.run_as_host_user,
                )
                log.info("sandbox_invocation_started", container=name, image=profile.image,
                         language=profile.language, tests=len(submission.test_cases),
                         wall_timeout_s=limits.wall_timeout_seconds)
                inv = self._run(argv, name, limits, ws, script)
        except OSError as e:
            # không tạo được workspace / không có docker binary
            raise InfrastructureError(f"cannot start sandbox: {e}") from e

        log.debug("sandbox_stdout", stdout=inv.stdout)
        log.debug("sandbox_stderr", stderr=inv.stderr)
        log.info("sandbox_invocation_finished", exit_code=inv.exit_code,
                 timed_out=inv.timed_out, duration_s=round(inv.duration_s, 3))

        if not inv.timed_out and inv.exit_code in _DOCKER_FAILURE_CODES:
            raise InfrastructureError(
                f"{_DOCKER_FAILURE_CODES[inv.exit_code]} (exit {inv.exit_code}): {inv.stderr.strip()}"
            )
        return inv

    def _run(self, argv: List[str], name: str, limits: Limits, ws: Path, script: str) -> SandboxInvocation:
        start = time.time()
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
        timed_out = False
        try:
            out, err = proc.communicate(timeout=limits.wall_timeout_seconds)
        except subprocess.TimeoutExpired:
            timed_out = True
            log.warning("sandbox_watchdog_expired", container=name, wall_timeout_s=limits.wall_timeout_seconds)
            self._kill(name)
            proc.kill()
            try:
                out, err = proc.communicate(timeout=self.kill_grace_s)
            except subprocess.TimeoutExpired as e:
                # giữ phần output đã đọc được, rồi reap client để không thành zombie
                log.error("sandbox_client_stuck", container=name, kill_grace_s=self.kill_grace_s)
                out, err = _partial(e.stdout), _partial(e.stderr)
                proc.wait()
            err = (err or "") + f"\n[watchdog] exceeded {limits.wall_timeout_seconds}s"

        return SandboxInvocation(
            workdir=ws,
            script=script,
            stdout=out or "",
            stderr=err or "",
            exit_code=proc.returncode if proc.returncode is not None else -1,
            timed_out=timed_out,
            duration_s=time.time() - start,
            meta={"container": name, "argv": argv},
        )

    def _kill(self, name: str) -> None:
        # kill client docker không dừng container; phải kill theo tên
        try:
            subprocess.run(kill_command(name, self.docker_bin), capture_output=True,
                           text=True, timeout=self.kill_grace_s)
        except (OSError, subprocess.TimeoutExpired) as e:
            log.error("sandbox_kill_failed", container=name, error=str(e))
