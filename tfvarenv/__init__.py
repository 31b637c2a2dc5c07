"""tfvarenv - versioned Terraform variable files per environment."""

__version__ = "0.3.0"
