"""Centralized brand configuration for user-facing copy."""

BRAND_NAME = "Otto"
BRAND_APP_DESCRIPTION = "Phone-agent administration and usage billing backend"
