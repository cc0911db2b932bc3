"""API request/response schemas -- camelCase on the wire, like the domain models."""

from typing import Any, Dict, List, Optional

from pydantic import Field

from scout.schemas import Candidate, CamelModel, RootKeyword, Run, RunOptions


# -- Runs --

class RunRequest(RunOptions):
    """Body of POST /api/trends/run. Every field is optional."""


class StartRunResponse(CamelModel):
    status: str = "ok"
    run: Run


class RunListResponse(CamelModel):
    total: int
    runs: List[Run]


# -- Candidates --

class CandidateListResponse(CamelModel):
    total: int
    candidates: List[Candidate]


class CandidateStatusRequest(CamelModel):
    status: str  # pending | approved | rejected


# -- Root keywords --

class RootCreateRequest(CamelModel):
    label: str = Field(min_length=1)
    keyword: str = Field(min_length=1)
    locale: str = "global"


class RootListResponse(CamelModel):
    total: int
    roots: List[RootKeyword]


# -- Health --

class HealthResponse(CamelModel):
    status: str
    timestamp: str
    config: Dict[str, Any] = Field(default_factory=dict)
    active_runs: List[str] = Field(default_factory=list)
    version: Optional[str] = None
