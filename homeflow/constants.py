"""Shared constants for the homeflow engine."""

KICKOFF_PHASE = "Kickoff"
PLANNING_PHASE = "Planning"
ORDERING_PHASE = "Ordering"
CLOSE_PROJECT_PHASE = "Close Project"

# Canonical phases in their required relative order.
STANDARD_PHASE_NAMES = (
    KICKOFF_PHASE,
    PLANNING_PHASE,
    ORDERING_PHASE,
    CLOSE_PROJECT_PHASE,
)

DEFAULT_CONFIG_FILE = "homeflow.yaml"

DUPLICATE_ID_SEPARATOR = "~"
