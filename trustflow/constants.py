"""Shared defaults for trustflow."""

DEFAULT_WORKFLOW_ID = "trust-bootcamp"

DEFAULT_AUTOSAVE_DEBOUNCE_SECONDS = 1.0
DEFAULT_STORE_TIMEOUT_SECONDS = 10.0

# Prefix used by the positional step key strategy ("step_1", "step_2", ...)
POSITIONAL_STEP_KEY_PREFIX = "step_"

ORDER_STATUS_PAID = "paid"
