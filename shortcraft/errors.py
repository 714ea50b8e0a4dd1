from __future__ import annotations

from typing import Any, Dict, Optional

RAW_EXCERPT_CHARS = 2000


class ShortcraftError(Exception):
    """Base class for failures that terminate a generation request."""

    status_code = 500
    code = "ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class Unauthorized(ShortcraftError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFound(ShortcraftError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class MissingDependency(ShortcraftError):
    status_code = 400
    code = "MISSING_DEPENDENCY"

    def __init__(self, stage: str, message: Optional[str] = None):
        super().__init__(message or f"Missing {stage}. Generate {stage} first.")
        self.stage = stage

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["missing"] = self.stage
        return d


class QuotaExceeded(ShortcraftError):
    status_code = 429
    code = "QUOTA_EXCEEDED"

    def __init__(self, plan: str, per_day: int, per_week: int, used_today: int, used_week: int):
        super().__init__(f"Quota exceeded for plan {plan}.")
        self.plan = plan
        self.per_day = per_day
        self.per_week = per_week
        self.used_today = used_today
        self.used_week = used_week

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "plan": self.plan,
            "limits": {"perDay": self.per_day, "perWeek": self.per_week},
            "usage": {"today": self.used_today, "week": self.used_week},
            "remaining": {
                "today": max(0, self.per_day - self.used_today),
                "week": max(0, self.per_week - self.used_week),
            },
        }


class MalformedGenerationOutput(ShortcraftError):
    status_code = 502
    code = "MALFORMED_GENERATION_OUTPUT"

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = (raw or "")[:RAW_EXCERPT_CHARS]

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["raw"] = self.raw
        return d


class GenerationServiceFailure(ShortcraftError):
    status_code = 502
    code = "GENERATION_SERVICE_FAILURE"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.details = details or ""

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["details"] = self.details
        return d


class VersionConflict(ShortcraftError):
    status_code = 409
    code = "VERSION_CONFLICT"
