"""
Kernel base classes for the mkslides pipeline.

A kernel is one deterministic pipeline stage:
- compute() does the work and returns JSON-serializable data
- summarize() turns that data into a one-line human summary
- run() wraps both with validation, an input hash, timing and persistence
  to <workspace>/stage<N>/<name>.json

Kernels talk to each other only through those persisted JSON files, which
keeps every stage inspectable after the fact when a workspace is kept.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List
from datetime import datetime
import hashlib
import json
import logging

from mkslides.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class KernelInput:
    """Standard input for any kernel.

    Attributes:
        workspace: Directory receiving stage outputs
        config: Pipeline configuration (DeckConfig.to_dict())
        dependencies: Output files of required kernels, keyed by kernel name
    """
    workspace: Path
    config: Dict[str, Any]
    dependencies: Dict[str, Path] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.workspace, str):
            self.workspace = Path(self.workspace)

    def load_dependency(self, name: str) -> Dict[str, Any]:
        """Return the ``data`` section persisted by kernel *name*."""
        path = self.dependencies[name]
        payload = json.loads(path.read_text(encoding="utf-8"))
        return payload["data"]


@dataclass
class KernelOutput:
    """Standard output from any kernel.

    Attributes:
        data: Full structured data (JSON-serializable)
        summary: Human-readable one-liner
        output_file: Path where JSON was persisted

    Traceability:
        kernel_name, kernel_version: Producer identity
        execution_time_ms: Wall time of compute() + summarize()
        input_hash: SHA256 prefix of config and dependency paths
        dependencies_used: Names of the dependencies consumed
    """
    data: Dict[str, Any]
    summary: str
    output_file: Path

    # Traceability
    kernel_name: str
    kernel_version: str
    execution_time_ms: int
    input_hash: str
    dependencies_used: List[str]

    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "output_file": str(self.output_file),
            "kernel_name": self.kernel_name,
            "kernel_version": self.kernel_version,
            "execution_time_ms": self.execution_time_ms,
            "input_hash": self.input_hash,
            "dependencies_used": self.dependencies_used,
            "warnings": self.warnings,
        }


class Kernel(ABC):
    """
    Abstract base class for all pipeline kernels.

    Subclasses must implement:
        - compute(): Core computation logic
        - summarize(): Generate human-readable summary

    Subclasses should override:
        - name: Unique kernel identifier
        - version: Semantic version
        - stage: Pipeline stage (1=collection, 2=parsing, 3=packaging)
        - requires: Kernel names whose outputs this one reads
        - provides: Capabilities this kernel provides

    run() never turns a failure into a result. The exception is logged and
    an error record persisted, then the original exception is re-raised.
    """

    name: str = "base"
    version: str = "1.0.0"
    category: str = "deck"
    stage: int = 0
    description: str = "Base kernel"

    requires: List[str] = []
    provides: List[str] = []

    @abstractmethod
    def compute(self, input: KernelInput) -> Dict[str, Any]:
        """
        Core computation logic. Must be deterministic.

        Raises:
            DeckError: On any fatal pipeline condition
        """
        pass

    @abstractmethod
    def summarize(self, data: Dict[str, Any]) -> str:
        pass

    def validate_input(self, input: KernelInput) -> List[str]:
        """
        Validate input before computation.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        for dep in self.requires:
            if dep not in input.dependencies:
                errors.append(f"Missing required dependency: {dep}")
            elif not input.dependencies[dep].exists():
                errors.append(f"Dependency file does not exist: {input.dependencies[dep]}")
        return errors

    def output_path(self, workspace: Path) -> Path:
        return workspace / f"stage{self.stage}" / f"{self.name}.json"

    def run(self, input: KernelInput) -> KernelOutput:
        """
        Execute kernel with full traceability.

        Do NOT override; override compute() and summarize() instead.

        Raises:
            ConfigError: If validate_input() reports problems
            DeckError: Whatever compute() raised, after it has been recorded
        """
        start_time = datetime.now()
        warnings: List[str] = []

        validation_errors = self.validate_input(input)
        if validation_errors:
            for err in validation_errors:
                logger.error(f"[{self.name}] Validation error: {err}")
            raise ConfigError(self.name, "input", "; ".join(validation_errors))

        input_hash = self._hash_input(input)
        logger.info(f"[{self.name}] Starting computation (input_hash={input_hash[:8]})")

        output_file = self.output_path(input.workspace)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        try:
            data = self.compute(input)
            summary = self.summarize(data)
        except Exception as e:
            logger.error(f"[{self.name}] Computation failed: {e}")
            self._persist(output_file, {
                "error": str(e),
                "error_type": type(e).__name__,
            }, f"Kernel {self.name} failed: {str(e)[:100]}", input_hash, start_time, False)
            raise

        if len(summary) > 500:
            summary = summary[:497] + "..."
            warnings.append("Summary truncated to 500 characters")

        execution_time_ms = self._persist(output_file, data, summary, input_hash, start_time, True)
        logger.info(f"[{self.name}] Output saved to {output_file} ({execution_time_ms}ms)")

        return KernelOutput(
            data=data,
            summary=summary,
            output_file=output_file,
            kernel_name=self.name,
            kernel_version=self.version,
            execution_time_ms=execution_time_ms,
            input_hash=input_hash,
            dependencies_used=list(input.dependencies.keys()),
            warnings=warnings,
        )

    def _persist(
        self,
        output_file: Path,
        data: Dict[str, Any],
        summary: str,
        input_hash: str,
        start_time: datetime,
        success: bool,
    ) -> int:
        execution_time_ms = int((datetime.now() - start_time).total_seconds() * 1000)
        output_data = {
            "_meta": {
                "kernel_name": self.name,
                "kernel_version": self.version,
                "execution_time_ms": execution_time_ms,
                "input_hash": input_hash,
                "timestamp": datetime.now().isoformat(),
                "success": success,
            },
            "data": data,
        }
        output_file.write_text(json.dumps(output_data, indent=2, default=str), encoding="utf-8")
        output_file.with_suffix(".summary.txt").write_text(summary, encoding="utf-8")
        return execution_time_ms

    def _hash_input(self, input: KernelInput) -> str:
        """SHA256 prefix over kernel identity, config and dependency paths."""
        content = json.dumps({
            "kernel": f"{self.name}@{self.version}",
            "config": input.config,
            "dependencies": {k: str(v) for k, v in sorted(input.dependencies.items())}
        }, sort_keys=True, default=str)
        return hashlib.sha256(content.encode()).hexdigest()[:16]

    def __repr__(self) -> str:
        return f"<Kernel {self.name}@{self.version} stage={self.stage}>"
