# src/shared/error_codes.py
# Central mapping that aligns with the error contract of the API process.
# Keep keys stable; hub/web clients rely on these.
ERROR_CODES = {
    # ─── Validation & Requests ──────────────────────────────────────────────
    "validation_error": {
        "http": 422,
        "message": "Validation failed for one or more fields."
    },

    # ─── Authentication & Authorization ────────────────────────────────────
    "unauthorized": {
        "http": 401,
        "message": "Authentication required or token invalid."
    },
    "forbidden": {
        "http": 403,
        "message": "You do not have permission to perform this action."
    },

    # ─── Resources ─────────────────────────────────────────────────────────
    "not_found": {
        "http": 404,
        "message": "Resource not found."
    },

    # ─── Server / Infrastructure ───────────────────────────────────────────
    "configuration_error": {
        "http": 500,
        "message": "Service is not configured for this operation."
    },
    "service_unavailable": {
        "http": 503,
        "message": "A dependency is unavailable."
    },
    "internal_error": {
        "http": 500,
        "message": "An unexpected error occurred."
    },
}
