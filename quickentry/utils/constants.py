"""
Constants shared by the quick-entry core.

Mutation names stored in QueuedMutation.mutation. The offline sync monitor
replays a queued entry by passing this name to the gateway's
execute_mutation(); add the handler there when adding a name here.
"""

MUTATION_NAMES = {
    # Calculator commit that failed while the backend was unreachable
    'CREATE_TRANSACTION': 'create_transaction',
}

# Arithmetic operators accepted by the entry machine
OPERATORS = ("+", "-", "*", "/")

# Quick-select chips shown above the keypad
TOP_USED_VALUES_LIMIT = 5

# Used when an explicit value is not passed to the queue / debouncer
DEFAULT_MAX_RETRIES = 5
DEFAULT_LOOKBACK_DAYS = 90
DEFAULT_DEBOUNCE_SECONDS = 0.3
