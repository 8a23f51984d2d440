"""Structured models for cluster reads and their outcomes."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Outcome(str, Enum):
    """Result of a single collection call."""

    WRITTEN = "written"
    SKIPPED = "skipped"  # resource absent or list empty
    FAILED = "failed"


class CollectionTarget(BaseModel):
    """Operator coordinates and bundle root for one run."""

    model_config = ConfigDict(frozen=True)

    operator_name: str
    operator_namespace: str
    dest_dir: Path

    @field_validator("dest_dir")
    @classmethod
    def _absolute(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @property
    def olm_selector(self) -> str:
        """Label OLM puts on every object it installs for this operator."""
        return f"operators.coreos.com/{self.operator_name}.{self.operator_namespace}"


class ResourceQuery(BaseModel):
    """One cluster read and where its output goes."""

    kind: str
    api_version: str = "v1"
    name: str | None = None
    selector: str | None = None
    namespace: str | None = None
    output_format: Literal["yaml", "json", "wide"] = "yaml"
    output_path: str

    @model_validator(mode="after")
    def _name_or_selector(self) -> "ResourceQuery":
        if self.name and self.selector:
            raise ValueError("name and selector are mutually exclusive")
        return self

    def describe(self) -> str:
        what = self.name or (f"-l {self.selector}" if self.selector else "(all)")
        where = f" -n {self.namespace}" if self.namespace else ""
        return f"{self.kind} {what}{where}"


class CollectionResult(BaseModel):
    """Outcome of a single get/exec/logs/fetch call."""

    outcome: Outcome
    description: str
    error: str | None = None

    @property
    def written(self) -> bool:
        return self.outcome == Outcome.WRITTEN


class RunTally(BaseModel):
    """Counts of call outcomes for one run."""

    written: int = 0
    skipped: int = 0
    failed: int = 0
    failures: list[str] = Field(default_factory=list)
    skipped_stages: list[str] = Field(default_factory=list)

    def record(self, result: CollectionResult) -> CollectionResult:
        if result.outcome == Outcome.WRITTEN:
            self.written += 1
        elif result.outcome == Outcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            self.failures.append(f"{result.description}: {result.error}")
        return result

    def record_failure(self, description: str, error: str) -> None:
        self.failed += 1
        self.failures.append(f"{description}: {error}")

    @property
    def total(self) -> int:
        return self.written + self.skipped + self.failed
