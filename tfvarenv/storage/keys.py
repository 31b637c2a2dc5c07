"""
Key path helpers for object storage.

Provides consistent key naming for the variable file and its two ledgers.
All helpers are pure: the same inputs always yield the same key, so
pre-existing ledger objects stay addressable. The prefix is used verbatim;
a trailing slash yields a double slash, matching the ledger keys
already present in existing buckets.
"""


def _join(prefix: str, name: str) -> str:
    return f"{prefix}/{name}"


def tfvars_key(prefix: str, tfvars_file: str) -> str:
    """Key of the variable file itself."""
    return _join(prefix, tfvars_file)


def version_metadata_key(prefix: str, tfvars_file: str) -> str:
    """Key of the version ledger stored next to the variable file."""
    return _join(prefix, f".{tfvars_file}.versions.json")


def deployment_history_key(prefix: str, env_name: str) -> str:
    """Key of the deployment ledger for one environment."""
    return _join(prefix, f".{env_name}.deployments.json")


def s3_uri(bucket: str, key: str) -> str:
    return f"s3://{bucket}/{key}"


def default_state_key(prefix: str) -> str:
    """Key of the Terraform state when no backend key is configured."""
    return _join(prefix, "terraform.tfstate")
