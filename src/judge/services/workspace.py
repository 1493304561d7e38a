from __future__ import annotations
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List
import os
import shutil

from ..core.models import LanguageProfile, TestCase
from ..core.utils import new_submission_id
from ..logging import get_logger

log = get_logger(__name__)


@contextmanager
def ephemeral_workspace(base_dir: Path) -> Iterator[Path]:
    """
    Thư mục tạm cho một lần chạy sandbox:
      <base_dir>/<uuid>/
        ├─ <source file>     (code user gửi)
        ├─ tests/<i>.in      (input test case i)
        ├─ tests/<i>.out     (expected output test case i)
        └─ run_script.sh     (driver)
    Luôn bị xoá khi thoát khỏi with, kể cả khi có exception.
    """
    # đảm bảo là absolute path (docker -v cần ABS)
    base = base_dir if base_dir.is_absolute() else base_dir.resolve()
    base.mkdir(parents=True, exist_ok=True)
    ws = base / new_submission_id()
    ws.mkdir(mode=0o755)
    try:
        yield ws
    finally:
        shutil.rmtree(ws, ignore_errors=True)
        if ws.exists():
            log.error("workspace_cleanup_failed", workdir=str(ws))


def materialize(ws: Path, profile: LanguageProfile, code: str, test_cases: List[TestCase],
                script: str, script_name: str = "run_script.sh", tests_dir: str = "tests") -> Path:
    """Ghi source, test cases, driver script vào workspace. Trả về đường dẫn script."""
    (ws / profile.source_file).write_text(code, encoding="utf-8")

    td = ws / tests_dir
    td.mkdir()
    for i, tc in enumerate(test_cases, 1):
        (td / f"{i}.in").write_text(tc.input, encoding="utf-8")
        (td / f"{i}.out").write_text(tc.expected_output, encoding="utf-8")

    script_path = ws / script_name
    script_path.write_text(script, encoding="utf-8")
    os.chmod(script_path, 0o755)
    return script_path
