from pathlib import Path

import pytest

from judge.settings import load_settings


@pytest.fixture
def clean_env(monkeypatch):
    import os
    for k in list(os.environ):
        if k.startswith("JUDGE_"):
            monkeypatch.delenv(k)
    return monkeypatch


def test_defaults_when_no_files(tmp_path, clean_env):
    clean_env.chdir(tmp_path)
    s = load_settings()
    assert s.runner == "docker"
    assert s.pids == 64
    assert s.nofile == 1024
    assert s.cpus == 1.0
    assert s.images == {}


def test_yaml_files_are_merged(tmp_path, clean_env):
    (tmp_path / "conf").mkdir()
    (tmp_path / "conf" / "sandbox.yaml").write_text(
        "runner: Remote\n"
        "work_dir: /var/judge\n"
        "images:\n  python: my-python-executor\n"
        "remote:\n  url: http://judge-runner:5000/run\n  timeout_s: 20\n"
    )
    (tmp_path / "conf" / "limits.yaml").write_text("pids: 32\ncompile_allowance_s: 45\n")
    clean_env.chdir(tmp_path)

    s = load_settings()
    assert s.runner == "remote"
    assert s.work_dir == Path("/var/judge")
    assert s.images == {"python": "my-python-executor"}
    assert s.remote_url == "http://judge-runner:5000/run"
    assert s.remote_timeout_s == 20.0
    assert s.pids == 32
    assert s.compile_allowance_s == 45.0
    assert s.nofile == 1024


def test_env_wins_over_yaml(tmp_path, clean_env):
    conf = tmp_path / "custom.yaml"
    conf.write_text("runner: remote\ndocker:\n  bin: /usr/bin/docker\n")
    clean_env.setenv("JUDGE_CONF", str(conf))
    clean_env.setenv("JUDGE_RUNNER", "docker")
    clean_env.chdir(tmp_path)

    s = load_settings()
    assert s.runner == "docker"
    assert s.docker_bin == "/usr/bin/docker"


def test_bad_limits_value(tmp_path, clean_env):
    (tmp_path / "conf").mkdir()
    (tmp_path / "conf" / "limits.yaml").write_text("pids: lots\n")
    clean_env.chdir(tmp_path)
    with pytest.raises(ValueError):
        load_settings()
