from .state import PipelineDeps, PipelineProgress
from .workflow import build_pipeline_graph, run_pipeline

__all__ = [
    "PipelineDeps",
    "PipelineProgress",
    "build_pipeline_graph",
    "run_pipeline",
]
