"""Item-based collaborative filtering as a chain of MapReduce jobs."""

from .driver import STAGES, Pipeline, PipelineConfig, runPipeline
from .mapreduce import JobResult, MapReduce, StageError

__version__ = "0.1.0"
