"""Pydantic models describing hashcc configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

AlgorithmName = Literal["md5", "sha1", "sha256", "sha512", "blake3"]
OutputFormatName = Literal["text", "json", "csv", "sumfile"]


class HashingConfig(BaseModel):
    """Algorithm selection and I/O tuning."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    algorithm: AlgorithmName = "sha256"
    chunk_size: int = Field(default=1024 * 1024, ge=4096)
    mmap_threshold: int = Field(default=4 * 1024 * 1024, ge=0)

    @field_validator("algorithm", mode="before")
    @classmethod
    def _normalise_algorithm(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower().replace("-", "")
        return value


class PolicyConfig(BaseModel):
    """Security policy applied to every target and expected entry."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    base_dir: Optional[Path] = None
    allow_absolute: bool = False
    allow_weak: bool = False


class ScanConfig(BaseModel):
    """Path enumeration settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    include: List[str] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=list)
    archives: bool = False
    follow_symlinks: bool = True


class RuntimeConfig(BaseModel):
    """Execution-time settings such as parallelism and logging."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    workers: Optional[int] = Field(default=None, ge=1)
    progress: bool = False
    log_level: str = "WARNING"
    log_file: Optional[Path] = None

    @property
    def effective_workers(self) -> int:
        return self.workers or os.cpu_count() or 1


class OutputConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    format: OutputFormatName = "text"


class VerifyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    strict: bool = False


class HashccConfig(BaseModel):
    """Root configuration object, immutable for the lifetime of one invocation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    hashing: HashingConfig = Field(default_factory=HashingConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    verify: VerifyConfig = Field(default_factory=VerifyConfig)


__all__ = [
    "AlgorithmName",
    "HashccConfig",
    "HashingConfig",
    "OutputConfig",
    "OutputFormatName",
    "PolicyConfig",
    "RuntimeConfig",
    "ScanConfig",
    "VerifyConfig",
]
