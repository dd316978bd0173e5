"""Shared constants for etlflow."""

DEFAULT_STEP_TIMEOUT = 30
DEFAULT_MAX_EXECUTION_TIME = 30

# Registry key of the built-in step group prototype
STEP_GROUP_PROTOTYPE = "step_group"

INDENT = "  "

PARAMETER_PREFIX = "~parameter:"
LAST_RUN_PREFIX = "last_run_"
