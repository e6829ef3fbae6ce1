from .runner import run_pipeline, load_workflow, select_pipelines
from .dsl import job, sh, gate, artifact, pipeline, JobBuilder, build
from .conditions import Condition, success, always, failure, event, ref, parse_condition
from .model import Step, JobTemplate, JobInstance, Outcome, InstanceResult, Pipeline, PipelineReport, TriggerContext

__all__ = [
    "job", "sh", "gate", "artifact", "pipeline", "JobBuilder", "build",
    "Condition", "success", "always", "failure", "event", "ref", "parse_condition",
    "Step", "JobTemplate", "JobInstance", "Outcome", "InstanceResult", "Pipeline", "PipelineReport", "TriggerContext",
    "run_pipeline", "load_workflow", "select_pipelines",
]
