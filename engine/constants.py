"""
Tunable thresholds for the execution engine.

The anomaly thresholds were tuned on real workbooks; change them together
with the tests that pin them.
"""

import os

# Collision guard
MAX_RELOCATION_ATTEMPTS = 20
RELOCATION_COLUMN_GAP = 2          # empty columns between used data and a relocated write

# Post-write validation
INCOMPLETE_EMPTY_RATIO = 0.3
INCOMPLETE_MIN_EMPTY = 3

# Batch-level suspicion (formula aggregates)
SUSPICIOUS_ZERO_MIN_COUNT = 10     # "more than N numeric results …"
SUSPICIOUS_ZERO_RATIO = 0.9        # "… of which more than this share is zero"
ALL_ZERO_MIN_COUNT = 5             # "more than N numeric results, all zero"

# Correction loop
MAX_FAILURE_ROUNDS = 1
MAX_SUSPICION_ROUNDS = 1
MAX_FOLLOWUP_ROUNDS = 3

# Hidden scratch sheet for calc actions
CALC_SHEET_NAME = "_AI_Calc"
CALC_TIMEOUT_SECONDS = float(os.getenv("CALC_TIMEOUT_SECONDS", "30"))

# Data index
MAX_ROWS_TO_ANALYZE = 3000
MAX_COLUMNS_TO_ANALYZE = 25
MAX_UNIQUE_VALUES = 100
MAX_VALUE_LENGTH = 50
SAMPLE_ROWS = 5
SAMPLE_COLUMNS = 15
WIDE_DATA_COLUMNS = 11

# Edit modes
EDIT_MODE_AUTO = "auto"
EDIT_MODE_CONFIRM = "confirm"
EDIT_MODE = os.getenv("EDIT_MODE", EDIT_MODE_AUTO).strip().lower()
