from .config import (
    EditingSettings,
    LLMSettings,
    PlanLimits,
    QuotaSettings,
    Settings,
    get_default_config,
    load_config,
)

__all__ = [
    "EditingSettings",
    "LLMSettings",
    "PlanLimits",
    "QuotaSettings",
    "Settings",
    "get_default_config",
    "load_config",
]
