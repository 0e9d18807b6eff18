"""Provider-wide constants for awsprov.

Static tables shared by the schema layer, the resource handlers and the
engine: enumerations accepted by the AWS APIs, error codes that mean "not
found", partition DNS suffixes and provider defaults.
"""

from typing import Dict, List, Tuple

PROVIDER_NAME = "aws"
RESOURCE_PREFIX = "aws_"
SETTINGS_FILENAMES: List[str] = ["awsprov.yml", "awsprov.yaml"]
DEFAULT_STATE_FILE = "awsprov.tfstate.json"
STATE_VERSION = 1

# Environment variables consulted when no region/profile is configured
REGION_ENV_VARS: Tuple[str, ...] = ("AWS_REGION", "AWS_DEFAULT_REGION")
PROFILE_ENV_VAR = "AWS_PROFILE"

# AWS error codes meaning the remote object is gone
NOT_FOUND_ERROR_CODES: List[str] = [
    "PipelineNotFoundException",
    "MountTargetNotFound",
    "FileSystemNotFound",
    "AccessPointNotFound",
    "NoSuchEntity",
    "NoSuchBucket",
    "NotFound",
    "404",
    "ResourceNotFoundException",
]

# Partition detection by region prefix, most specific first
PARTITION_REGION_PREFIXES: List[Tuple[str, str]] = [
    ("us-isob-", "aws-iso-b"),
    ("us-iso-", "aws-iso"),
    ("us-gov-", "aws-us-gov"),
    ("cn-", "aws-cn"),
]
DEFAULT_PARTITION = "aws"

PARTITION_DNS_SUFFIXES: Dict[str, str] = {
    "aws": "amazonaws.com",
    "aws-cn": "amazonaws.com.cn",
    "aws-us-gov": "amazonaws.com",
    "aws-iso": "c2s.ic.gov",
    "aws-iso-b": "sc2s.sgov.gov",
}

# CodePipeline
CODEPIPELINE_ACTION_CATEGORIES: List[str] = [
    "Source",
    "Build",
    "Deploy",
    "Test",
    "Invoke",
    "Approval",
    "Compute",
]
CODEPIPELINE_ACTION_OWNERS: List[str] = ["AWS", "Custom", "ThirdParty"]
CODEPIPELINE_ARTIFACT_STORE_TYPES: List[str] = ["S3"]
CODEPIPELINE_ENCRYPTION_KEY_TYPES: List[str] = ["KMS"]
CODEPIPELINE_EXECUTION_MODES: List[str] = ["QUEUED", "SUPERSEDED", "PARALLEL"]
CODEPIPELINE_PIPELINE_TYPES: List[str] = ["V1", "V2"]
CODEPIPELINE_DEFAULT_EXECUTION_MODE = "SUPERSEDED"
CODEPIPELINE_DEFAULT_PIPELINE_TYPE = "V1"
CODEPIPELINE_DEFAULT_RUN_ORDER = 1
CODEPIPELINE_NAME_PATTERN = r"^[A-Za-z0-9.@\-_]+$"
CODEPIPELINE_NAMESPACE_PATTERN = r"^[A-Za-z0-9@\-_]+$"
CODEPIPELINE_VERSION_PATTERN = r"^[0-9A-Za-z_-]+$"
CODEPIPELINE_VARIABLE_NAME_PATTERN = r"^[A-Za-z0-9@\-_]+$"

# GitHub (version 1) source actions: the API masks the token on read
GITHUB_ACTION_PROVIDER = "GitHub"
GITHUB_OAUTH_TOKEN_KEY = "OAuthToken"
MASKED_SECRET = "****"

# CodeStar connections
CODESTAR_CONNECTION_PROVIDER_TYPES: List[str] = [
    "Bitbucket",
    "GitHub",
    "GitHubEnterpriseServer",
    "GitLab",
    "GitLabSelfManaged",
]

# IAM
IAM_DEFAULT_ROLE_PATH = "/"
IAM_DEFAULT_MAX_SESSION_DURATION = 3600

# S3
S3_DEFAULT_REGION = "us-east-1"
S3_LEGACY_LOCATION_CONSTRAINTS: Dict[str, str] = {"EU": "eu-west-1"}
S3_DELETE_BATCH_SIZE = 1000

# Placeholder rendered for values that are only known after apply
UNKNOWN_DISPLAY = "(known after apply)"
SENSITIVE_DISPLAY = "(sensitive value)"
