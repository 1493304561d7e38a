from __future__ import annotations


class JudgeError(Exception):
    """Lỗi gốc của engine chấm bài."""


class InvalidSubmission(JudgeError):
    """Thiếu code / language / test case hoặc giới hạn không hợp lệ. Không chạy sandbox."""


class UnsupportedLanguage(JudgeError):
    """Ngôn ngữ chưa đăng ký. Lỗi vĩnh viễn, không retry."""

    def __init__(self, language: str):
        super().__init__(f"language '{language}' is not supported")
        self.language = language


class UnsafeIdentifier(JudgeError):
    """Tên file / ngôn ngữ / token lệnh không an toàn để đưa vào driver script."""


class InfrastructureError(JudgeError):
    """Không khởi động được sandbox (thiếu docker, thiếu image, hết tài nguyên...)."""


class ProtocolError(JudgeError):
    """Dòng directive sai schema."""
