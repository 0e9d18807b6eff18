"""AWS CodePipeline: pipeline declaration model, reconciler and resource."""

from provider.service.codepipeline.pipeline import (
    expand_pipeline_declaration,
    find_pipeline_by_name,
    flatten_pipeline_declaration,
    list_pipeline_names,
    resource_pipeline,
)
from provider.service.codepipeline.reconciler import ReconcilePlan, reconcile

__all__ = [
    "ReconcilePlan",
    "expand_pipeline_declaration",
    "find_pipeline_by_name",
    "flatten_pipeline_declaration",
    "list_pipeline_names",
    "reconcile",
    "resource_pipeline",
]
