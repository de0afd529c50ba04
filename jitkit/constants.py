"""Named constants — eliminates magic strings across the codebase."""

from __future__ import annotations

REGISTER_PREFIX = "%"

CFG_ENTRY_LABEL = "entry"
BLOCK_LABEL_PREFIX = "__block_"

DEFAULT_LABEL_PREFIX = "L"
IF_FALSE_LABEL_PREFIX = "if_false"
IF_END_LABEL_PREFIX = "if_end"
UNLESS_TRUE_LABEL_PREFIX = "unless_true"
UNLESS_END_LABEL_PREFIX = "unless_end"
LOOP_START_LABEL_PREFIX = "loop_start"
LOOP_DONE_LABEL_PREFIX = "loop_done"
REDO_LABEL_PREFIX = "redo"

FUNCTION_NAME_PREFIX = "function_"

POINTER_SIZE = 8

# Address of the first byte of engine memory; everything below is unmapped
# so that a null pointer dereference faults.
MEMORY_BASE_ADDRESS = 0x10000
MEMORY_LIMIT = 64 * 1024 * 1024

DEFAULT_MAX_STEPS = 10_000_000
DEFAULT_MAX_CALL_DEPTH = 200

MERMAID_MAX_NODE_LINES = 12
