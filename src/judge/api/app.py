from __future__ import annotations
from functools import lru_cache
from typing import Any, List, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..core.errors import InvalidSubmission, UnsupportedLanguage
from ..core.languages import supported_languages
from ..core.models import Submission
from ..isolation.docker import probe_capabilities
from ..logging import get_logger, setup_logging
from ..runner.base import Runner
from ..runner.docker_runner import DockerRunner
from ..runner.remote_runner import RemoteRunner
from ..services.judge_service import JudgeService
from ..settings import Settings, load_settings

log = get_logger(__name__)


def build_runner(s: Settings) -> Runner:
    """Bên gọi chọn runner; engine chỉ nhận một Runner."""
    if s.runner == "remote":
        return RemoteRunner.from_settings(s)
    if s.runner == "docker":
        return DockerRunner.from_settings(s)
    raise ValueError(f"unknown runner '{s.runner}' (expected docker|remote)")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def get_service() -> JudgeService:
    s = get_settings()
    setup_logging(s.log_level)
    return JudgeService(build_runner(s), s)


app = FastAPI(title="Sandbox Judge")


# --------- Schemas (theo request gốc) ---------
# field để Any: Submission.from_payload tự validate và trả 400 {"error"}, không để FastAPI trả 422
class SubmissionReq(BaseModel):
    submission_code: Any = None
    code: Any = None
    language: Any = None
    time_limit: Any = None
    memory_limit: Any = None
    test_cases: Any = None


class ResultRes(BaseModel):
    test_case_number: int
    input: str
    expected_output: str
    actual_output: str
    time_taken: float
    memory_used: float
    status: str
    error_message: Optional[str] = None
    passed: bool


class RunRes(BaseModel):
    results: List[ResultRes]


# --------- Endpoints ---------

@app.get("/health")
def health(s: Settings = Depends(get_settings)):
    return {
        "ok": True,
        "languages": supported_languages(),
        "capabilities": probe_capabilities(docker_bin=s.docker_bin, runner=s.runner),
    }


@app.post("/submissions/run", response_model=RunRes)
def run_submission(req: SubmissionReq, svc: JudgeService = Depends(get_service)):
    try:
        submission = Submission.from_payload(req.model_dump())
        results = svc.run_batch(submission)
    except (InvalidSubmission, UnsupportedLanguage) as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except Exception as e:
        log.exception("submission_failed")
        return JSONResponse(status_code=500, content={"error": "Internal server error", "message": str(e)})
    return RunRes(results=[ResultRes(**r.as_dict()) for r in results])
