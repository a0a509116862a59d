"""Content generation: prompts, output parsing, and the three-pass pipeline."""

from clipcraft.generation.pipeline import GenerationPipeline, generate_batch
from clipcraft.generation.single import generate_script, generate_single, generate_thread_styles
from clipcraft.generation.style import StyleAnalyzer

__all__ = [
    "GenerationPipeline",
    "StyleAnalyzer",
    "generate_batch",
    "generate_script",
    "generate_single",
    "generate_thread_styles",
]
