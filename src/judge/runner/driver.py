from __future__ import annotations
import re
import shlex
from typing import List, Sequence

from ..core.errors import UnsafeIdentifier
from ..core.models import LanguageProfile
from ..services.protocol import (
    COMPILATION_ERROR,
    PROTOCOL_VERSION,
    RESULTS_END,
    RESULTS_START,
    TEST_CASE_RESULT,
)

SCRIPT_NAME = "run_script.sh"
TESTS_DIR = "tests"

# tên ngôn ngữ / tên file: chữ, số, . _ + - ; không có "/" hay khoảng trắng
_SAFE_IDENT = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.+-]*$")
# token của lệnh compile/run sau khi thay placeholder (vd: -std=gnu++17, ./a.out)
_SAFE_TOKEN = re.compile(r"^[A-Za-z0-9_./=+:-]+$")


def check_identifier(value: str, what: str) -> str:
    if not isinstance(value, str) or not _SAFE_IDENT.match(value) or ".." in value:
        raise UnsafeIdentifier(f"unsafe {what}: {value!r}")
    return value


def render_command(template: Sequence[str], profile: LanguageProfile) -> str:
    """Thay {source}/{executable} rồi quote từng token; token lạ -> UnsafeIdentifier."""
    tokens: List[str] = []
    for tok in template:
        rendered = tok.replace("{source}", profile.source_file).replace("{executable}", profile.executable_file)
        if not _SAFE_TOKEN.match(rendered):
            raise UnsafeIdentifier(f"unsafe command token: {rendered!r}")
        tokens.append(rendered)
    if not tokens:
        raise UnsafeIdentifier("empty command")
    return " ".join(shlex.quote(t) for t in tokens)


class ScriptBuilder:
    """Ghép bash script theo từng khối; giá trị động chỉ đi vào qua assign() (đã quote)."""

    def __init__(self, shebang: str = "#!/bin/bash"):
        self._lines: List[str] = [shebang]

    def comment(self, text: str) -> "ScriptBuilder":
        self._lines.append(f"# {text}")
        return self

    def assign(self, name: str, value) -> "ScriptBuilder":
        if not re.match(r"^[A-Z_][A-Z0-9_]*$", name):
            raise UnsafeIdentifier(f"unsafe variable name: {name!r}")
        self._lines.append(f"{name}={shlex.quote(str(value))}")
        return self

    def function(self, name: str, body: str) -> "ScriptBuilder":
        self._lines.append(f"{name}() {{")
        self._lines.append(f"  {body}")
        self._lines.append("}")
        return self

    def block(self, text: str) -> "ScriptBuilder":
        self._lines.extend(text.strip("\n").splitlines())
        return self

    def blank(self) -> "ScriptBuilder":
        self._lines.append("")
        return self

    def render(self) -> str:
        return "\n".join(self._lines) + "\n"


_HELPERS = r"""
b64_file() {
  head -c "$OUTPUT_LIMIT" "$1" 2>/dev/null | base64 | tr -d '\n'
}

oom_kills() {
  local n=""
  if [ -r /sys/fs/cgroup/memory.events ]; then
    n=$(awk '$1 == "oom_kill" {print $2}' /sys/fs/cgroup/memory.events 2>/dev/null)
  elif [ -r /sys/fs/cgroup/memory/memory.oom_control ]; then
    n=$(awk '$1 == "oom_kill" {print $2}' /sys/fs/cgroup/memory/memory.oom_control 2>/dev/null)
  fi
  echo "${n:-0}"
}
"""

_COMPILE_STEP = r"""
if [ "$COMPILED" = "1" ]; then
  compile_submission > compile.log 2>&1
  compile_rc=$?
  if [ "$compile_rc" -ne 0 ]; then
    if [ "$compile_rc" -eq 124 ] || [ "$compile_rc" -eq 137 ]; then
      echo "compilation timed out after ${COMPILE_TIMEOUT}s" >> compile.log
    fi
    printf '%s {"v":%d,"diagnostic_b64":"%s"}\n' "$MARK_COMPILATION_ERROR" "$PROTOCOL_VERSION" "$(b64_file compile.log)"
    exit 0
  fi
fi
"""

_TEST_LOOP = r"""
echo "$MARK_RESULTS_START"
i=1
while [ -f "$TESTS_DIR/$i.in" ]; do
  cp "$TESTS_DIR/$i.in" input.txt
  : > output.txt
  : > stderr.txt
  oom_before=$(oom_kills)
  start_ns=$(date +%s%N)
  ( ulimit -f "$FILE_LIMIT_KB"; run_submission ) < input.txt > output.txt 2> stderr.txt
  exit_code=$?
  end_ns=$(date +%s%N)
  oom_after=$(oom_kills)

  elapsed_ms=$(( (end_ns - start_ns) / 1000000 ))
  if [ "$elapsed_ms" -lt 0 ]; then elapsed_ms=0; fi
  time_used=$(printf '%d.%03d' $((elapsed_ms / 1000)) $((elapsed_ms % 1000)))

  if [ "$exit_code" -eq 124 ] || { [ "$exit_code" -eq 137 ] && [ "$elapsed_ms" -ge "$TIME_LIMIT_MS" ]; }; then
    status="Time Limit Exceeded"
  elif [ "$oom_after" != "$oom_before" ]; then
    status="Memory Limit Exceeded"
  elif [ "$exit_code" -ne 0 ]; then
    status="Runtime Error"
  else
    status="Success"
  fi

  truncated=false
  if [ "$(wc -c < output.txt)" -gt "$OUTPUT_LIMIT" ]; then truncated=true; fi

  printf '%s {"v":%d,"index":%d,"status":"%s","exit_code":%d,"time":"%s","memory":0,"truncated":%s,"input_b64":"%s","expected_output_b64":"%s","output_b64":"%s","stderr_b64":"%s"}\n' \
    "$MARK_TEST_CASE_RESULT" "$PROTOCOL_VERSION" "$i" "$status" "$exit_code" "$time_used" "$truncated" \
    "$(b64_file "$TESTS_DIR/$i.in")" \
    "$(b64_file "$TESTS_DIR/$i.out")" \
    "$(b64_file output.txt)" \
    "$(b64_file stderr.txt)"
  i=$((i + 1))
done
echo "$MARK_RESULTS_END"
exit 0
"""


def generate(
    profile: LanguageProfile,
    language: str,
    time_limit_s: float,
    *,
    output_limit_bytes: int = 64 * 1024,
    compile_timeout_s: float = 30,
    workdir: str = "/app",
) -> str:
    """
    Sinh driver script chạy trong sandbox:
      1. compile một lần (nếu cần); lỗi -> 1 dòng COMPILATION_ERROR rồi exit 0
      2. RESULTS_START, mỗi test case 1 dòng TEST_CASE_RESULT (JSON, giá trị base64)
      3. RESULTS_END
    Code của submission không bao giờ đi vào nội dung script.
    """
    check_identifier(language, "language")
    check_identifier(profile.source_file, "source file")
    check_identifier(profile.executable_file, "executable file")
    if not isinstance(time_limit_s, (int, float)) or isinstance(time_limit_s, bool) or time_limit_s <= 0:
        raise ValueError(f"time limit must be positive, got {time_limit_s!r}")
    if not re.match(r"^/[A-Za-z0-9_/.-]*$", workdir):
        raise UnsafeIdentifier(f"unsafe workdir: {workdir!r}")

    run_cmd = render_command(profile.run_cmd, profile)
    compile_cmd = render_command(profile.compile_cmd, profile) if profile.compiled else None

    # ulimit -f tính theo KB; để dư so với OUTPUT_LIMIT, phần thừa bị cắt khi báo kết quả
    file_limit_kb = max(1024, (output_limit_bytes * 4) // 1024)

    sb = ScriptBuilder()
    sb.comment(f"judge driver, protocol v{PROTOCOL_VERSION}. Generated, do not edit.")
    sb.block("set -u")
    sb.blank()
    sb.assign("LANGUAGE", language)
    sb.assign("SOURCE_FILE", profile.source_file)
    sb.assign("EXECUTABLE_FILE", profile.executable_file)
    sb.assign("COMPILED", "1" if compile_cmd else "0")
    sb.assign("TIME_LIMIT", f"{time_limit_s:g}")
    sb.assign("TIME_LIMIT_MS", int(round(time_limit_s * 1000)))
    sb.assign("COMPILE_TIMEOUT", f"{compile_timeout_s:g}")
    sb.assign("OUTPUT_LIMIT", int(output_limit_bytes))
    sb.assign("FILE_LIMIT_KB", file_limit_kb)
    sb.assign("TESTS_DIR", TESTS_DIR)
    sb.assign("PROTOCOL_VERSION", PROTOCOL_VERSION)
    sb.assign("MARK_COMPILATION_ERROR", COMPILATION_ERROR)
    sb.assign("MARK_RESULTS_START", RESULTS_START)
    sb.assign("MARK_TEST_CASE_RESULT", TEST_CASE_RESULT)
    sb.assign("MARK_RESULTS_END", RESULTS_END)
    sb.blank()
    sb.block(_HELPERS)
    sb.blank()
    if compile_cmd:
        sb.function("compile_submission", f'timeout -k 1 "${{COMPILE_TIMEOUT}}s" {compile_cmd}')
    else:
        sb.function("compile_submission", "return 0")
    sb.function("run_submission", f'exec timeout -k 1 "${{TIME_LIMIT}}s" {run_cmd}')
    sb.blank()
    sb.block(f'cd {shlex.quote(workdir)} || exit 1')
    sb.block(_COMPILE_STEP)
    sb.block(_TEST_LOOP)
    return sb.render()
