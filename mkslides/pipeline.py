"""
Sequential runner for the mkslides kernels.

Each kernel reads its dependencies from <workspace>/stage<N>/<name>.json and
writes its own output there. Without an explicit workspace a temporary one
is used and removed afterwards.
"""

from __future__ import annotations

import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional
import logging

from mkslides.base import Kernel, KernelInput, KernelOutput
from mkslides.config import DeckConfig
from mkslides.kernels.deck_package import DeckPackageKernel
from mkslides.kernels.deck_slide_parse import DeckSlideParseKernel
from mkslides.kernels.deck_slide_scan import DeckSlideScanKernel
from mkslides.models import AssetCopyPlan, PackageResult, ParsedSlide, SlideSource
from mkslides.template_engine import TemplateEngine

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Outputs of the kernels that ran, in stage order."""
    outputs: List[KernelOutput] = field(default_factory=list)
    workspace: Optional[Path] = None     # None when a temporary one was used

    def output(self, kernel_name: str) -> KernelOutput:
        for out in self.outputs:
            if out.kernel_name == kernel_name:
                return out
        raise KeyError(kernel_name)

    @property
    def slides(self) -> List[SlideSource]:
        data = self.output(DeckSlideScanKernel.name).data
        return [SlideSource.from_dict(s) for s in data.get("slides", [])]

    @property
    def parsed_slides(self) -> List[ParsedSlide]:
        data = self.output(DeckSlideParseKernel.name).data
        return [ParsedSlide.from_dict(s) for s in data.get("slides", [])]

    @property
    def copy_plan(self) -> AssetCopyPlan:
        data = self.output(DeckSlideParseKernel.name).data
        return AssetCopyPlan.from_dict(data.get("copy_plan", []))

    @property
    def package(self) -> PackageResult:
        return PackageResult.from_dict(self.output(DeckPackageKernel.name).data)


def _discover_dependencies(requires: List[str], workspace: Path) -> Dict[str, Path]:
    """Find output files from required kernels."""
    deps = {}
    for req in requires:
        for candidate in sorted(workspace.glob(f"stage*/{req}.json")):
            deps[req] = candidate
            break
    return deps


def run_kernel(kernel: Kernel, workspace: Path, config: DeckConfig) -> KernelOutput:
    """Run one kernel against *workspace*; exceptions propagate."""
    deps = _discover_dependencies(kernel.requires, workspace)
    ki = KernelInput(workspace=workspace, config=config.to_dict(), dependencies=deps)
    result = kernel.run(ki)
    logger.info(f"[{kernel.name}] {result.summary}")
    return result


@contextmanager
def _workspace(workspace: Optional[Path]) -> Iterator[Path]:
    if workspace is not None:
        workspace = Path(workspace)
        workspace.mkdir(parents=True, exist_ok=True)
        yield workspace
        return
    with tempfile.TemporaryDirectory(prefix="mkslides-") as tmp:
        yield Path(tmp)


def _run(kernels: List[Kernel], config: DeckConfig, workspace: Optional[Path]) -> PipelineResult:
    config.validate()
    result = PipelineResult(workspace=Path(workspace) if workspace is not None else None)
    with _workspace(workspace) as ws:
        for kernel in kernels:
            result.outputs.append(run_kernel(kernel, ws, config))
    return result


def build_presentation(
    config: DeckConfig,
    engine: Optional[TemplateEngine] = None,
    workspace: Optional[Path] = None,
) -> PipelineResult:
    """
    Scan, parse and package the presentation described by *config*.

    Raises:
        DeckError: The first fatal error of any stage
    """
    return _run(
        [DeckSlideScanKernel(), DeckSlideParseKernel(), DeckPackageKernel(engine)],
        config,
        workspace,
    )


def plan_presentation(config: DeckConfig, workspace: Optional[Path] = None) -> PipelineResult:
    """Scan and parse only; nothing is written to the output directory."""
    return _run([DeckSlideScanKernel(), DeckSlideParseKernel()], config, workspace)
