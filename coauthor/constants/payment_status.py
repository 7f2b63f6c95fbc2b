ALLOWED_TRANSITIONS = {
    "pending": ["completed", "failed"],
    "completed": ["refunded"],
    "failed": [],
    "refunded": [],
}

TERMINAL_STATUSES = {"completed", "failed", "refunded"}
