from __future__ import annotations
import re
import uuid

_ELAPSED_RE = re.compile(r"^(\d*)\.(\d+)$|^(\d+)$")


def new_submission_id() -> str:
    return uuid.uuid4().hex


def normalize_elapsed(raw) -> str:
    """
    Chuẩn hoá thời gian chạy về dạng "S.mmm" (luôn có chữ số đầu, 3 số lẻ).
    ".482" -> "0.482", "2" -> "2.000", 1.5 -> "1.500". Âm hoặc sai dạng -> ValueError.
    """
    if isinstance(raw, bool):
        raise ValueError(f"malformed elapsed time: {raw!r}")
    if isinstance(raw, (int, float)):
        if raw < 0:
            raise ValueError(f"negative elapsed time: {raw!r}")
        return f"{raw:.3f}"

    text = str(raw).strip()
    m = _ELAPSED_RE.match(text)
    if not m:
        raise ValueError(f"malformed elapsed time: {raw!r}")
    if m.group(3) is not None:
        return f"{int(m.group(3))}.000"
    whole = m.group(1) or "0"
    frac = (m.group(2) + "000")[:3]
    return f"{int(whole)}.{frac}"


def format_elapsed(seconds: float) -> str:
    return normalize_elapsed(max(0.0, seconds))
