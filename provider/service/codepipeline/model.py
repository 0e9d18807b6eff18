"""CodePipeline pipeline declaration model.

Typed mirror of the CodePipeline ``PipelineDeclaration`` structure with
conversions to and from both the boto3 wire shape (camelCase, nested
``actionTypeId``) and the resource state shape (snake_case blocks).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import provider.config as config
from provider.exceptions import ValidationError


@dataclass
class EncryptionKey:
    id: str
    type: str = "KMS"

    def to_api(self) -> Dict[str, str]:
        return {"id": self.id, "type": self.type}


@dataclass
class ArtifactStore:
    """Artifact store; ``region`` is only set for cross-region pipelines."""

    location: str
    type: str = "S3"
    region: str = ""
    encryption_key: Optional[EncryptionKey] = None

    def to_api(self) -> Dict[str, Any]:
        store: Dict[str, Any] = {"location": self.location, "type": self.type}
        if self.encryption_key:
            store["encryptionKey"] = self.encryption_key.to_api()
        return store

    @classmethod
    def from_api(cls, data: Dict[str, Any], region: str = "") -> "ArtifactStore":
        key = data.get("encryptionKey")
        return cls(
            location=data.get("location", ""),
            type=data.get("type", "S3"),
            region=region,
            encryption_key=EncryptionKey(key["id"], key.get("type", "KMS")) if key else None,
        )

    def to_state(self) -> Dict[str, Any]:
        return {
            "location": self.location,
            "type": self.type,
            "region": self.region,
            "encryption_key": (
                [{"id": self.encryption_key.id, "type": self.encryption_key.type}]
                if self.encryption_key
                else []
            ),
        }

    @classmethod
    def from_state(cls, attrs: Dict[str, Any]) -> "ArtifactStore":
        keys = attrs.get("encryption_key") or []
        key = keys[0] if keys else None
        return cls(
            location=attrs.get("location") or "",
            type=attrs.get("type") or "S3",
            region=attrs.get("region") or "",
            encryption_key=EncryptionKey(key["id"], key.get("type") or "KMS") if key else None,
        )


@dataclass
class Action:
    name: str
    category: str
    owner: str
    provider: str
    version: str
    input_artifacts: List[str] = field(default_factory=list)
    output_artifacts: List[str] = field(default_factory=list)
    run_order: int = 0
    region: str = ""
    namespace: str = ""
    role_arn: str = ""
    configuration: Dict[str, str] = field(default_factory=dict)

    def to_api(self) -> Dict[str, Any]:
        action: Dict[str, Any] = {
            "name": self.name,
            "actionTypeId": {
                "category": self.category,
                "owner": self.owner,
                "provider": self.provider,
                "version": self.version,
            },
        }
        if self.configuration:
            action["configuration"] = dict(self.configuration)
        if self.input_artifacts:
            action["inputArtifacts"] = [{"name": n} for n in self.input_artifacts]
        if self.output_artifacts:
            action["outputArtifacts"] = [{"name": n} for n in self.output_artifacts]
        if self.run_order > 0:
            action["runOrder"] = self.run_order
        if self.region:
            action["region"] = self.region
        if self.namespace:
            action["namespace"] = self.namespace
        if self.role_arn:
            action["roleArn"] = self.role_arn
        return action

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Action":
        type_id = data.get("actionTypeId", {})
        return cls(
            name=data.get("name", ""),
            category=type_id.get("category", ""),
            owner=type_id.get("owner", ""),
            provider=type_id.get("provider", ""),
            version=type_id.get("version", ""),
            input_artifacts=[a["name"] for a in data.get("inputArtifacts") or []],
            output_artifacts=[a["name"] for a in data.get("outputArtifacts") or []],
            run_order=data.get("runOrder") or 0,
            region=data.get("region") or "",
            namespace=data.get("namespace") or "",
            role_arn=data.get("roleArn") or "",
            configuration=dict(data.get("configuration") or {}),
        )

    def to_state(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category,
            "owner": self.owner,
            "provider": self.provider,
            "version": self.version,
            "input_artifacts": list(self.input_artifacts),
            "output_artifacts": list(self.output_artifacts),
            "run_order": self.run_order,
            "region": self.region,
            "namespace": self.namespace,
            "role_arn": self.role_arn,
            "configuration": dict(self.configuration),
        }

    @classmethod
    def from_state(cls, attrs: Dict[str, Any]) -> "Action":
        return cls(
            name=attrs.get("name") or "",
            category=attrs.get("category") or "",
            owner=attrs.get("owner") or "",
            provider=attrs.get("provider") or "",
            version=attrs.get("version") or "",
            input_artifacts=list(attrs.get("input_artifacts") or []),
            output_artifacts=list(attrs.get("output_artifacts") or []),
            run_order=attrs.get("run_order") or 0,
            region=attrs.get("region") or "",
            namespace=attrs.get("namespace") or "",
            role_arn=attrs.get("role_arn") or "",
            configuration=dict(attrs.get("configuration") or {}),
        )

    @property
    def masks_oauth_token(self) -> bool:
        """GitHub (version 1) source actions get their OAuthToken masked on read."""
        return (
            self.provider == config.GITHUB_ACTION_PROVIDER
            and config.GITHUB_OAUTH_TOKEN_KEY in self.configuration
        )


@dataclass
class Stage:
    name: str
    actions: List[Action] = field(default_factory=list)

    def to_api(self) -> Dict[str, Any]:
        return {"name": self.name, "actions": [a.to_api() for a in self.actions]}

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Stage":
        return cls(
            name=data.get("name", ""),
            actions=[Action.from_api(a) for a in data.get("actions") or []],
        )

    def to_state(self) -> Dict[str, Any]:
        return {"name": self.name, "action": [a.to_state() for a in self.actions]}

    @classmethod
    def from_state(cls, attrs: Dict[str, Any]) -> "Stage":
        return cls(
            name=attrs.get("name") or "",
            actions=[Action.from_state(a) for a in attrs.get("action") or []],
        )


@dataclass
class Variable:
    name: str
    default_value: str = ""
    description: str = ""

    def to_api(self) -> Dict[str, str]:
        variable = {"name": self.name}
        if self.default_value:
            variable["defaultValue"] = self.default_value
        if self.description:
            variable["description"] = self.description
        return variable

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Variable":
        return cls(
            name=data.get("name", ""),
            default_value=data.get("defaultValue") or "",
            description=data.get("description") or "",
        )

    def to_state(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "default_value": self.default_value,
            "description": self.description,
        }

    @classmethod
    def from_state(cls, attrs: Dict[str, Any]) -> "Variable":
        return cls(
            name=attrs.get("name") or "",
            default_value=attrs.get("default_value") or "",
            description=attrs.get("description") or "",
        )


@dataclass
class PipelineDeclaration:
    """A complete pipeline: what CreatePipeline/UpdatePipeline take as a whole."""

    name: str
    role_arn: str
    artifact_stores: List[ArtifactStore] = field(default_factory=list)
    stages: List[Stage] = field(default_factory=list)
    execution_mode: str = ""
    pipeline_type: str = ""
    variables: List[Variable] = field(default_factory=list)
    version: int = 0

    def validate(self) -> List[str]:
        """Return the local invariant violations of this declaration."""
        problems: List[str] = []
        stores = self.artifact_stores
        if not stores:
            problems.append("artifact_store: at least one artifact store is required")
        elif len(stores) == 1:
            if stores[0].region:
                problems.append(
                    "artifact_store: region cannot be set for a single-region CodePipeline"
                )
        else:
            if any(not s.region for s in stores):
                problems.append(
                    "artifact_store: region must be set for a cross-region CodePipeline"
                )
            regions = [s.region for s in stores if s.region]
            if len(set(regions)) != len(regions):
                problems.append(
                    "artifact_store: only one Artifact Store can be defined per region "
                    "for a cross-region CodePipeline"
                )
            for region in self.action_regions:
                if region not in regions:
                    problems.append(
                        f"artifact_store: no Artifact Store for region {region!r} "
                        "used by a cross-region action"
                    )

        seen_stages = set()
        for i, stage in enumerate(self.stages):
            if stage.name in seen_stages:
                problems.append(f"stage.{i}.name: duplicate stage name {stage.name!r}")
            seen_stages.add(stage.name)
            seen_actions = set()
            for j, action in enumerate(stage.actions):
                if action.name in seen_actions:
                    problems.append(
                        f"stage.{i}.action.{j}.name: duplicate action name "
                        f"{action.name!r} in stage {stage.name!r}"
                    )
                seen_actions.add(action.name)

        seen_variables = set()
        for i, variable in enumerate(self.variables):
            if variable.name in seen_variables:
                problems.append(f"variable.{i}.name: duplicate variable name {variable.name!r}")
            seen_variables.add(variable.name)
        if self.variables and self.effective_pipeline_type != "V2":
            problems.append("variable: pipeline variables require pipeline_type V2")
        return problems

    @property
    def effective_pipeline_type(self) -> str:
        return self.pipeline_type or config.CODEPIPELINE_DEFAULT_PIPELINE_TYPE

    @property
    def effective_execution_mode(self) -> str:
        return self.execution_mode or config.CODEPIPELINE_DEFAULT_EXECUTION_MODE

    @property
    def action_regions(self) -> List[str]:
        return sorted({a.region for s in self.stages for a in s.actions if a.region})

    def to_api(self) -> Dict[str, Any]:
        """Build the request body for CreatePipeline / UpdatePipeline.

        Raises:
            ValidationError: If the declaration violates a local invariant
        """
        problems = self.validate()
        if problems:
            raise ValidationError(
                "Invalid CodePipeline declaration", problems, {"pipeline": self.name}
            )
        declaration: Dict[str, Any] = {
            "name": self.name,
            "roleArn": self.role_arn,
            "stages": [s.to_api() for s in self.stages],
        }
        if len(self.artifact_stores) == 1:
            declaration["artifactStore"] = self.artifact_stores[0].to_api()
        else:
            declaration["artifactStores"] = {
                s.region: s.to_api() for s in self.artifact_stores
            }
        if self.execution_mode:
            declaration["executionMode"] = self.execution_mode
        if self.pipeline_type:
            declaration["pipelineType"] = self.pipeline_type
        if self.variables:
            declaration["variables"] = [v.to_api() for v in self.variables]
        if self.version:
            declaration["version"] = self.version
        return declaration

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "PipelineDeclaration":
        stores: List[ArtifactStore] = []
        if data.get("artifactStore"):
            stores.append(ArtifactStore.from_api(data["artifactStore"]))
        for region, store in sorted((data.get("artifactStores") or {}).items()):
            stores.append(ArtifactStore.from_api(store, region))
        return cls(
            name=data.get("name", ""),
            role_arn=data.get("roleArn", ""),
            artifact_stores=stores,
            stages=[Stage.from_api(s) for s in data.get("stages") or []],
            execution_mode=data.get("executionMode") or "",
            pipeline_type=data.get("pipelineType") or "",
            variables=[Variable.from_api(v) for v in data.get("variables") or []],
            version=data.get("version") or 0,
        )

    def to_state(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "role_arn": self.role_arn,
            "artifact_store": [s.to_state() for s in self.artifact_stores],
            "stage": [s.to_state() for s in self.stages],
            "execution_mode": self.execution_mode,
            "pipeline_type": self.pipeline_type,
            "variable": [v.to_state() for v in self.variables],
        }

    @classmethod
    def from_state(cls, attrs: Dict[str, Any]) -> "PipelineDeclaration":
        return cls(
            name=attrs.get("name") or "",
            role_arn=attrs.get("role_arn") or "",
            artifact_stores=[
                ArtifactStore.from_state(s) for s in attrs.get("artifact_store") or []
            ],
            stages=[Stage.from_state(s) for s in attrs.get("stage") or []],
            execution_mode=attrs.get("execution_mode") or "",
            pipeline_type=attrs.get("pipeline_type") or "",
            variables=[Variable.from_state(v) for v in attrs.get("variable") or []],
        )
