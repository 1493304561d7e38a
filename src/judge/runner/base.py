from __future__ import annotations

from ..core.models import LanguageProfile, SandboxInvocation, Submission


class Runner:
    """
    Capability chung cho mọi kiểu sandbox runner (docker local, remote service).
    Engine chỉ biết interface này; bên gọi quyết định dựng runner nào.
    """

    name = "base"

    def execute(self, submission: Submission, profile: LanguageProfile, script: str) -> SandboxInvocation:
        raise NotImplementedError
