# client/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class InputInfo:
    """A pending input as returned by the API."""
    id: str
    message: Optional[str]
    proceed_text: str
    parameters: List[Dict[str, Any]]
    submit_url: str = ""
    abort_url: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> InputInfo:
        return cls(
            id=data["id"],
            message=data.get("message"),
            proceed_text=data.get("proceed_text") or "Proceed",
            parameters=list(data.get("parameters") or []),
            submit_url=data.get("submit_url", ""),
            abort_url=data.get("abort_url", ""),
        )

    @property
    def parameter_names(self) -> List[str]:
        return [p.get("name", "") for p in self.parameters]


@dataclass
class StageInfo:
    id: str
    name: str
    status: str
    executed: bool
    start_time_millis: Optional[int] = None
    duration_millis: Optional[int] = None
    logs: str = ""
    input: Optional[InputInfo] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> StageInfo:
        raw_input = data.get("input")
        return cls(
            id=data["id"],
            name=data["name"],
            status=data["status"],
            executed=bool(data.get("executed", False)),
            start_time_millis=data.get("start_time_millis"),
            duration_millis=data.get("duration_millis"),
            logs=data.get("logs") or "",
            input=InputInfo.from_dict(raw_input) if raw_input else None,
        )


@dataclass
class StagesInfo:
    """BuildView response."""
    job_name: str
    job_full_name: str
    build_number: int
    build_url: str
    build_status: str
    running: bool
    stages: List[StageInfo] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> StagesInfo:
        return cls(
            job_name=data["job_name"],
            job_full_name=data["job_full_name"],
            build_number=int(data["build_number"]),
            build_url=data.get("build_url", ""),
            build_status=data["build_status"],
            running=bool(data.get("running", False)),
            stages=[StageInfo.from_dict(s) for s in data.get("stages") or []],
        )
