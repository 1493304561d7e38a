from __future__ import annotations
from pathlib import Path
from typing import List, Optional
import os
import shutil

from ..core.models import Limits

CONTAINER_WORKDIR = "/app"


def wrap_with_docker(
    cmd: List[str],
    workspace: Path,
    limits: Limits,
    image: str,
    name: str,
    *,
    docker_bin: str = "docker",
    seccomp_profile: Optional[Path] = None,
    run_as_host_user: bool = True,
) -> List[str]:
    """
    Bọc lệnh bằng `docker run` với bộ cờ bắt buộc, lần nào cũng áp:
    - không network
    - memory = memory limit của submission (không cho swap thêm)
    - pids / nproc / nofile cố định (chống fork bomb)
    - tối đa 1 CPU
    Container được đặt tên để watchdog có thể `docker kill`.
    """
    memory = f"{limits.memory_mb}m"
    argv = [
        docker_bin, "run", "--rm", "-i",
        "--name", name,
        "--network", "none",
        "--memory", memory,
        "--memory-swap", memory,
        "--pids-limit", str(limits.pids),
        "--ulimit", f"nproc={limits.pids}:{limits.pids}",
        "--ulimit", f"nofile={limits.nofile}:{limits.nofile}",
        f"--cpus={limits.cpus}",
        "--cap-drop", "ALL",
        "--security-opt", "no-new-privileges",
    ]
    if seccomp_profile:
        argv += ["--security-opt", f"seccomp={Path(seccomp_profile).resolve()}"]
    # file tạo trong /app thuộc về user của service -> host xoá được thư mục
    if run_as_host_user and hasattr(os, "getuid"):
        argv += ["--user", f"{os.getuid()}:{os.getgid()}"]

    ws_abs = os.path.abspath(str(workspace))
    argv += ["-v", f"{ws_abs}:{CONTAINER_WORKDIR}", "-w", CONTAINER_WORKDIR, image]
    return argv + list(cmd)


def kill_command(name: str, docker_bin: str = "docker") -> List[str]:
    return [docker_bin, "kill", name]


def probe_capabilities(docker_bin: str = "docker", runner: str = "docker") -> dict:
    """Trả về thông tin môi trường để debug isolation."""
    return {
        "runner": runner,
        "docker_bin": docker_bin,
        "has_docker": bool(shutil.which(docker_bin)),
        "has_bash": bool(shutil.which("bash")),
        "euid": os.geteuid() if hasattr(os, "geteuid") else None,
    }
