"""CLI command groups — thin wrappers over ``retail_cicd.core.services``."""
