"""Pipeline reconciliation between desired configuration and live state.

Given the desired PipelineDeclaration and the one observed through
GetPipeline (or recorded in state), decide whether an UpdatePipeline call is
enough or the pipeline has to be recreated, and build the request.

Rules:
    - A name change forces replacement; nothing else does.
    - Everything else (role, artifact stores, stages, actions, execution
      mode, pipeline type, variables) changes in place. UpdatePipeline
      takes the whole declaration, so the request is always the complete
      desired declaration, never a patch.
    - Tags never travel with the declaration. They are reconciled with
      TagResource/UntagResource against the pipeline ARN.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import provider.config as config
from provider.service.codepipeline.model import Action, PipelineDeclaration, Stage
from provider.tags import Tags, diff_tags

logger = logging.getLogger(__name__)


@dataclass
class ReconcilePlan:
    """Outcome of reconciling one pipeline."""

    requires_replace: bool = False
    replace_reasons: List[str] = field(default_factory=list)
    changed_paths: List[str] = field(default_factory=list)
    update_request: Optional[Dict[str, Any]] = None
    tags_to_set: Tags = field(default_factory=dict)
    tag_keys_to_remove: List[str] = field(default_factory=list)

    @property
    def update_required(self) -> bool:
        return self.update_request is not None

    @property
    def tags_changed(self) -> bool:
        return bool(self.tags_to_set or self.tag_keys_to_remove)

    @property
    def has_changes(self) -> bool:
        return self.requires_replace or self.update_required or self.tags_changed


def _config_changes(prefix: str, desired: Action, observed: Action) -> List[str]:
    paths = []
    keys = sorted(set(desired.configuration) | set(observed.configuration))
    for key in keys:
        want = desired.configuration.get(key)
        have = observed.configuration.get(key)
        if (
            key == config.GITHUB_OAUTH_TOKEN_KEY
            and have == config.MASKED_SECRET
            and want is not None
        ):
            continue
        if want != have:
            paths.append(f"{prefix}.configuration.{key}")
    return paths


def _action_changes(prefix: str, desired: Action, observed: Action, region: str) -> List[str]:
    paths = []
    for attr in (
        "name",
        "category",
        "owner",
        "provider",
        "version",
        "input_artifacts",
        "output_artifacts",
        "namespace",
        "role_arn",
    ):
        if getattr(desired, attr) != getattr(observed, attr):
            paths.append(f"{prefix}.{attr}")

    want_order = desired.run_order or config.CODEPIPELINE_DEFAULT_RUN_ORDER
    have_order = observed.run_order or config.CODEPIPELINE_DEFAULT_RUN_ORDER
    if want_order != have_order:
        paths.append(f"{prefix}.run_order")

    # An unset region means "the pipeline's own region"
    if (desired.region or region) != (observed.region or region):
        paths.append(f"{prefix}.region")

    paths.extend(_config_changes(prefix, desired, observed))
    return paths


def _stage_changes(desired: List[Stage], observed: List[Stage], region: str) -> List[str]:
    paths = []
    if len(desired) != len(observed):
        paths.append("stage.#")
    for i, (want, have) in enumerate(zip(desired, observed)):
        prefix = f"stage.{i}"
        if want.name != have.name:
            paths.append(f"{prefix}.name")
        if len(want.actions) != len(have.actions):
            paths.append(f"{prefix}.action.#")
        for j, (want_action, have_action) in enumerate(zip(want.actions, have.actions)):
            paths.extend(
                _action_changes(f"{prefix}.action.{j}", want_action, have_action, region)
            )
    return paths


def _store_set(declaration: PipelineDeclaration) -> List[str]:
    return sorted(
        json.dumps(s.to_state(), sort_keys=True) for s in declaration.artifact_stores
    )


def _variable_list(declaration: PipelineDeclaration) -> List[Dict[str, str]]:
    return [v.to_state() for v in declaration.variables]


def declaration_changes(
    desired: PipelineDeclaration, observed: PipelineDeclaration, region: str = ""
) -> List[str]:
    """List attribute paths that differ between two declarations.

    The ``name`` attribute is not included; see reconcile().
    """
    paths: List[str] = []
    if desired.role_arn != observed.role_arn:
        paths.append("role_arn")
    if _store_set(desired) != _store_set(observed):
        paths.append("artifact_store")
    paths.extend(_stage_changes(desired.stages, observed.stages, region))
    if desired.effective_execution_mode != observed.effective_execution_mode:
        paths.append("execution_mode")
    if desired.effective_pipeline_type != observed.effective_pipeline_type:
        paths.append("pipeline_type")
    if _variable_list(desired) != _variable_list(observed):
        paths.append("variable")
    return paths


def reconcile(
    desired: PipelineDeclaration,
    observed: PipelineDeclaration,
    region: str = "",
    old_tags: Optional[Tags] = None,
    new_tags: Optional[Tags] = None,
) -> ReconcilePlan:
    """Reconcile a desired pipeline declaration with the observed one.

    Args:
        desired: Declaration built from configuration
        observed: Declaration read from the API or from prior state
        region: Region the pipeline lives in; actions without an explicit
                region run there
        old_tags: Tags currently on the pipeline
        new_tags: Tags that should be on the pipeline

    Returns:
        ReconcilePlan describing replacement, the UpdatePipeline request (if
        any) and the tag calls to issue

    Raises:
        ValidationError: If an update is needed and the desired declaration
                         violates a local invariant
    """
    plan = ReconcilePlan()
    plan.tags_to_set, plan.tag_keys_to_remove = diff_tags(old_tags, new_tags)

    if desired.name != observed.name:
        plan.requires_replace = True
        plan.replace_reasons.append("name")
        plan.changed_paths.append("name")
        logger.debug(
            f"CodePipeline {observed.name!r} must be replaced: renamed to {desired.name!r}"
        )
        return plan

    plan.changed_paths = declaration_changes(desired, observed, region)
    if plan.changed_paths:
        plan.update_request = desired.to_api()
        logger.debug(
            f"CodePipeline {desired.name!r} update in place: {', '.join(plan.changed_paths)}"
        )
    return plan
