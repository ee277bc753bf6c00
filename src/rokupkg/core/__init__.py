"""Core business logic for roku-pkg.

This package contains the pipeline and its pure helpers:
- decisions: DecisionProvider protocol and pre-supplied answers
- validation: build directory checks
- artifacts: output directory and artifact relocation
- orchestrator: the deployment state machine
"""

from .artifacts import ensure_output_dir, relocate_artifact
from .decisions import BuildAction, BuildChoice, DecisionProvider, ProgrammaticDecisions
from .orchestrator import DeploymentOrchestrator, GenerateOptions
from .validation import build_exists, validate_build_dir, validate_package_file

__all__ = [
    "BuildAction",
    "BuildChoice",
    "DecisionProvider",
    "DeploymentOrchestrator",
    "GenerateOptions",
    "ProgrammaticDecisions",
    "build_exists",
    "ensure_output_dir",
    "relocate_artifact",
    "validate_build_dir",
    "validate_package_file",
]
