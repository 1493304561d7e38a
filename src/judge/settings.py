from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ---- runner: "docker" (chạy local) | "remote" (service runner qua HTTP) ----
    runner: str = "docker"

    # ---- docker ----
    docker_bin: str = "docker"
    work_dir: Path = Path("/tmp/judge")
    images: Dict[str, str] = {}
    seccomp_profile: Optional[Path] = None
    run_as_host_user: bool = True

    # ---- remote ----
    remote_url: str = "http://runner:5000/run"
    remote_timeout_s: float = 10.0

    # ---- limits cố định, không phụ thuộc submission ----
    pids: int = 64
    nofile: int = 1024
    cpus: float = 1.0
    output_limit_bytes: int = 64 * 1024
    compile_allowance_s: float = 30.0
    startup_allowance_s: float = 10.0

    log_level: str = "INFO"

    # ---- config files ----
    limits_file: Path = Path("conf/limits.yaml")

    # env prefix JUDGE_*
    model_config = SettingsConfigDict(env_prefix="JUDGE_", extra="ignore")


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {}
    return data if isinstance(data, dict) else {}


def load_settings() -> Settings:
    # 0) Nạp base từ env JUDGE_*
    s = Settings()

    # 1) Đọc conf/sandbox.yaml (hoặc JUDGE_CONF)
    data = _read_yaml(Path(os.environ.get("JUDGE_CONF", "conf/sandbox.yaml")))

    docker = data.get("docker") or {}
    if not isinstance(docker, dict):
        docker = {}
    remote = data.get("remote") or {}
    if not isinstance(remote, dict):
        remote = {}
    images = data.get("images") or {}
    if not isinstance(images, dict):
        images = {}

    # env được ưu tiên hơn file: chỉ lấy giá trị file khi env không set
    def pick(env_key: str, value, current):
        if os.environ.get(f"JUDGE_{env_key}") is not None or value is None:
            return current
        return value

    seccomp = pick("SECCOMP_PROFILE", docker.get("seccomp_profile"), s.seccomp_profile)
    s = s.model_copy(
        update={
            "runner": str(pick("RUNNER", data.get("runner"), s.runner)).lower(),
            "docker_bin": str(pick("DOCKER_BIN", docker.get("bin"), s.docker_bin)),
            "work_dir": Path(str(pick("WORK_DIR", data.get("work_dir"), s.work_dir))),
            "images": {**{str(k): str(v) for k, v in images.items()}, **s.images},
            "seccomp_profile": Path(str(seccomp)) if seccomp else None,
            "run_as_host_user": bool(pick("RUN_AS_HOST_USER", docker.get("run_as_host_user"), s.run_as_host_user)),
            "remote_url": str(pick("REMOTE_URL", remote.get("url"), s.remote_url)),
            "remote_timeout_s": float(pick("REMOTE_TIMEOUT_S", remote.get("timeout_s"), s.remote_timeout_s)),
            "log_level": str(pick("LOG_LEVEL", data.get("log_level"), s.log_level)),
        }
    )

    # 2) Đọc conf/limits.yaml (tùy chọn)
    limits = _read_yaml(s.limits_file)
    try:
        s = s.model_copy(
            update={
                "pids": int(pick("PIDS", limits.get("pids"), s.pids)),
                "nofile": int(pick("NOFILE", limits.get("nofile"), s.nofile)),
                "cpus": float(pick("CPUS", limits.get("cpus"), s.cpus)),
                "output_limit_bytes": int(pick("OUTPUT_LIMIT_BYTES", limits.get("output_limit_bytes"), s.output_limit_bytes)),
                "compile_allowance_s": float(pick("COMPILE_ALLOWANCE_S", limits.get("compile_allowance_s"), s.compile_allowance_s)),
                "startup_allowance_s": float(pick("STARTUP_ALLOWANCE_S", limits.get("startup_allowance_s"), s.startup_allowance_s)),
            }
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"invalid value in {s.limits_file}: {e}") from e
    return s
