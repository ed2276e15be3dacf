from context42.generator.base import (
    GenerateRequest,
    GenerationCancelled,
    GenerationError,
    StyleGuideGenerator,
    common_directory,
    style_guide_filename,
)
from context42.generator.cli_backend import CliStyleGuideGenerator
from context42.generator.failure_classifier import FailureClass, classify_generation_failure

__all__ = [
    "CliStyleGuideGenerator",
    "FailureClass",
    "GenerateRequest",
    "GenerationCancelled",
    "GenerationError",
    "StyleGuideGenerator",
    "classify_generation_failure",
    "common_directory",
    "style_guide_filename",
]
