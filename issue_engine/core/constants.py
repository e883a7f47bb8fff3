"""
Constants
Centralised storage for event types, severity/reproducibility scales, rule
categories and the screen-name table shared by every layer.
"""

# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------
class EventType:
    SCREEN_LOAD = "SCREEN_LOAD"
    UI_CLICK    = "UI_CLICK"
    BACKEND     = "BACKEND"
    SCREENSHOT  = "SCREENSHOT"
    ERROR       = "ERROR"
    CONSOLE     = "CONSOLE"


EVENT_TYPES: set[str] = {
    EventType.SCREEN_LOAD,
    EventType.UI_CLICK,
    EventType.BACKEND,
    EventType.SCREENSHOT,
    EventType.ERROR,
    EventType.CONSOLE,
}

# Backend records emitted by the instrumentation itself, never a response to a click
INITIAL_SNAPSHOT = "INITIAL_SNAPSHOT"
SEARCH_RESULT = "SEARCH_RESULT"

# resultCount written when the result-count element could not be found in the DOM
RESULT_COUNT_UNAVAILABLE = "取得不可"


# ---------------------------------------------------------------------------
# Severity / reproducibility scales
# ---------------------------------------------------------------------------
SEVERITY_WEIGHT: dict[str, float] = {
    "Critical": 1.0,
    "High":     0.8,
    "Medium":   0.5,
    "Low":      0.2,
}

REPRO_WEIGHT: dict[str, float] = {
    "Always":    1.0,
    "Likely":    0.75,
    "Sometimes": 0.5,
    "Unknown":   0.3,
}

SEVERITIES = ["Critical", "High", "Medium", "Low"]


# ---------------------------------------------------------------------------
# Rule categories
# ---------------------------------------------------------------------------
CATEGORY_LABELS: dict[str, str] = {
    "ERROR":              "Error log detected",
    "UNKNOWN_FEATURE":    "Logger initialised without a feature id",
    "DUPLICATE_BIND":     "Button handler bound twice",
    "SEARCH_UNAVAILABLE": "Search result unavailable",
    "API_NOT_CALLED":     "No backend call after button press",
    "RAPID_BACK":         "Back button fired repeatedly",
    "DUPLICATE_LOAD":     "Screen loaded twice",
    "BACKEND_FAILURE":    "Backend process failed",
    "FORM_RESIDUAL":      "Form values left after clear",
    "LOW_LOG_COVERAGE":   "Too few operations recorded",
    "NO_SCREEN_MODE":     "Screen mode not set",
}

DIFFICULTY: dict[str, str] = {
    "ERROR":              "High",
    "UNKNOWN_FEATURE":    "Low",
    "DUPLICATE_BIND":     "High",
    "SEARCH_UNAVAILABLE": "Medium",
    "API_NOT_CALLED":     "High",
    "RAPID_BACK":         "Medium",
    "DUPLICATE_LOAD":     "Medium",
    "BACKEND_FAILURE":    "High",
    "FORM_RESIDUAL":      "Low",
    "LOW_LOG_COVERAGE":   "Low",
    "NO_SCREEN_MODE":     "Low",
}


# ---------------------------------------------------------------------------
# Screen id → display name
# ---------------------------------------------------------------------------
SCREEN_NAMES: dict[str, str] = {
    "MC_DRAWING_LIST":        "Drawing list",
    "MC_INDEX_EDIT":          "Index program edit",
    "MC_EQUIPMENT_LIST":      "Equipment list",
    "MC_MACHINING_DETAIL":    "Machining information",
    "MC_HISTORY":             "System operation history",
    "MC_PRODUCTS_LIST":       "Products list",
    "MC_PHOTO_LIST":          "Photo list",
    "MC_SETUP_SHEET_BACK":    "Setup sheet back",
    "MC_SETUP_SHEET_ISSUE":   "Setup sheet issue (repeat)",
    "MC_RAW_CLAW_SEARCH":     "Raw claw search",
    "MC_SP_SETUP_NOTIFY":     "SP setup sheet notification",
    "MC_TOOLING_BASIC":       "Tooling edit (basic)",
    "MC_TOOLING_DETAIL":      "Tooling edit (detail)",
    "MC_INFO_UPDATE_CONFIRM": "Update confirmation",
    "MC_USER_AUTH":           "User authentication",
    "MC_WORK_RECORD_LIST":    "Work record list",
    "MC_WORK_RECORD":         "Work record entry",
    "MC_WORK_OFFSET":         "Work offset / equipment utilisation",
    "MC_RAW_CLAW_EDIT":       "Raw claw edit / setup sheet list",
    "UNKNOWN":                "(unclassified: logger not initialised)",
}


def screen_name(screen_id: str) -> str:
    return SCREEN_NAMES.get(screen_id, screen_id)
