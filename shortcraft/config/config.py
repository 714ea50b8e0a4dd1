import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import toml
import yaml
from dotenv import dotenv_values

CONFIG_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(os.path.dirname(CONFIG_DIR))
DEFAULT_CONFIG_FILE = os.path.join(CONFIG_DIR, "config.toml")
DEFAULT_PLANS_FILE = os.path.join(CONFIG_DIR, "plans.yaml")

STAGE_MODEL_ENV = {
    "hooks": "OPENAI_MODEL_HOOKS",
    "storyboard": "OPENAI_MODEL_STORYBOARD",
    "image_prompts": "OPENAI_MODEL_IMAGE_PROMPTS",
    "video_prompts": "OPENAI_MODEL_VIDEO_PROMPTS",
    "editing_script": "OPENAI_MODEL_EDITING_SCRIPT",
    "translate": "OPENAI_MODEL_TRANSLATE",
}


def get_default_config():
    """Get default configuration"""
    return {
        "database_path": os.path.join(PROJECT_ROOT, "data", "shortcraft.db"),
        "log_file": os.path.join(PROJECT_ROOT, "logs", "shortcraft.log"),
        "log_level": "INFO",

        # Generation service
        "llm": {
            "provider": "openai",
            "model_id": "gpt-4o-mini",
            "api_key": "",
            "base_url": "",
            "timeout_sec": 60.0,
            "stage_models": {},
            "temperatures": {
                "hooks": 0.7,
                "storyboard": 0.6,
                "image_prompts": 0.4,
                "video_prompts": 0.7,
                "editing_script": 0.4,
                "translate": 0.2,
            },
        },

        # Quota limiter
        "quota": {
            "disabled": False,
            "timezone": "America/Toronto",
            "default_plan": "FREE",
            "gated_stages": ["editing_script"],
            "admin_emails": [],
            "agency_emails": [],
            "pro_emails": [],
            "starter_emails": [],
        },

        # Editing script
        "editing": {
            "video_scene_cost": 3.0,
            "static_target_duration": 24.0,
        },
    }


DEFAULT_PLANS = {
    "FREE": {"per_day": 1, "per_week": 3},
    "STARTER": {"per_day": 3, "per_week": 15},
    "PRO": {"per_day": 10, "per_week": 50},
    "AGENCY": {"per_day": 30, "per_week": 150},
}


@dataclass(frozen=True)
class PlanLimits:
    per_day: int
    per_week: int


@dataclass(frozen=True)
class LLMSettings:
    provider: str = "openai"
    model_id: str = "gpt-4o-mini"
    api_key: str = ""
    base_url: str = ""
    timeout_sec: float = 60.0
    stage_models: Dict[str, str] = field(default_factory=dict)
    temperatures: Dict[str, float] = field(default_factory=dict)

    def model_for(self, stage: str) -> str:
        return self.stage_models.get(stage) or self.model_id

    def temperature_for(self, stage: str) -> Optional[float]:
        return self.temperatures.get(stage)


@dataclass(frozen=True)
class QuotaSettings:
    plans: Dict[str, PlanLimits] = field(default_factory=dict)
    disabled: bool = False
    timezone: str = "America/Toronto"
    default_plan: str = "FREE"
    gated_stages: Tuple[str, ...] = ("editing_script",)
    admin_emails: Tuple[str, ...] = ()
    agency_emails: Tuple[str, ...] = ()
    pro_emails: Tuple[str, ...] = ()
    starter_emails: Tuple[str, ...] = ()

    def is_bypassed(self, email: Optional[str]) -> bool:
        if self.disabled:
            return True
        return _norm_email(email) in self.admin_emails

    def plan_for(self, email: Optional[str]) -> str:
        e = _norm_email(email)
        # Highest tier wins when an address is listed twice.
        if e in self.agency_emails:
            return "AGENCY"
        if e in self.pro_emails:
            return "PRO"
        if e in self.starter_emails:
            return "STARTER"
        return self.default_plan

    def limits_for(self, plan: str) -> PlanLimits:
        if plan in self.plans:
            return self.plans[plan]
        return self.plans[self.default_plan]


@dataclass(frozen=True)
class EditingSettings:
    video_scene_cost: float = 3.0
    static_target_duration: float = 24.0


@dataclass(frozen=True)
class Settings:
    database_path: str
    log_file: str
    log_level: str
    llm: LLMSettings
    quota: QuotaSettings
    editing: EditingSettings

    @classmethod
    def from_dict(cls, config: Mapping[str, Any], plans: Mapping[str, Any]) -> "Settings":
        llm = config.get("llm", {})
        quota = config.get("quota", {})
        editing = config.get("editing", {})
        plan_table = {
            str(name).upper(): PlanLimits(per_day=int(v["per_day"]), per_week=int(v["per_week"]))
            for name, v in plans.items()
        }
        default_plan = str(quota.get("default_plan", "FREE")).upper()
        if default_plan not in plan_table:
            raise ValueError(f"default_plan {default_plan!r} is not defined in the plan table")
        return cls(
            database_path=str(config["database_path"]),
            log_file=str(config.get("log_file") or ""),
            log_level=str(config.get("log_level", "INFO")).upper(),
            llm=LLMSettings(
                provider=str(llm.get("provider", "openai")),
                model_id=str(llm.get("model_id", "gpt-4o-mini")),
                api_key=str(llm.get("api_key", "")),
                base_url=str(llm.get("base_url", "")),
                timeout_sec=float(llm.get("timeout_sec", 60.0)),
                stage_models=dict(llm.get("stage_models") or {}),
                temperatures={k: float(v) for k, v in (llm.get("temperatures") or {}).items()},
            ),
            quota=QuotaSettings(
                plans=plan_table,
                disabled=bool(quota.get("disabled", False)),
                timezone=str(quota.get("timezone", "America/Toronto")),
                default_plan=default_plan,
                gated_stages=tuple(quota.get("gated_stages") or ("editing_script",)),
                admin_emails=_email_tuple(quota.get("admin_emails")),
                agency_emails=_email_tuple(quota.get("agency_emails")),
                pro_emails=_email_tuple(quota.get("pro_emails")),
                starter_emails=_email_tuple(quota.get("starter_emails")),
            ),
            editing=EditingSettings(
                video_scene_cost=float(editing.get("video_scene_cost", 3.0)),
                static_target_duration=float(editing.get("static_target_duration", 24.0)),
            ),
        )


def _norm_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def _email_tuple(value: Any) -> Tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        value = value.split(",")
    return tuple(e for e in (_norm_email(v) for v in value) if e)


def _split_list(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_plans(plans_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the plan tier table from YAML, falling back to the built-in table.
    """
    path = plans_file or DEFAULT_PLANS_FILE
    if not os.path.exists(path):
        return dict(DEFAULT_PLANS)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    plans = data.get("plans", data)
    if not plans:
        return dict(DEFAULT_PLANS)
    return plans


def apply_env_overrides(config: Dict[str, Any], env_vars: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    config = _merge(config, {})
    llm = dict(config["llm"])
    quota = dict(config["quota"])

    if env_vars.get("SHORTCRAFT_DB_PATH"):
        config["database_path"] = env_vars["SHORTCRAFT_DB_PATH"]
    if env_vars.get("SHORTCRAFT_LOG_FILE") is not None:
        config["log_file"] = env_vars["SHORTCRAFT_LOG_FILE"]
    if env_vars.get("LOG_LEVEL"):
        config["log_level"] = env_vars["LOG_LEVEL"]

    if env_vars.get("OPENAI_API_KEY"):
        llm["api_key"] = env_vars["OPENAI_API_KEY"]
    if env_vars.get("OPENAI_MODEL"):
        llm["model_id"] = env_vars["OPENAI_MODEL"]
    if env_vars.get("OPENAI_BASE_URL"):
        llm["base_url"] = env_vars["OPENAI_BASE_URL"]
    if env_vars.get("OPENAI_TIMEOUT_SEC"):
        llm["timeout_sec"] = float(env_vars["OPENAI_TIMEOUT_SEC"])
    stage_models = dict(llm.get("stage_models") or {})
    for stage, key in STAGE_MODEL_ENV.items():
        if env_vars.get(key):
            stage_models[stage] = env_vars[key]
    llm["stage_models"] = stage_models

    if "QUOTA_DISABLED" in env_vars and env_vars["QUOTA_DISABLED"] is not None:
        quota["disabled"] = env_vars["QUOTA_DISABLED"].strip().lower() in {"1", "true", "yes"}
    if env_vars.get("QUOTA_TIMEZONE"):
        quota["timezone"] = env_vars["QUOTA_TIMEZONE"]
    for key in ("admin_emails", "agency_emails", "pro_emails", "starter_emails"):
        env_key = key.upper()
        if env_vars.get(env_key):
            quota[key] = _split_list(env_vars[env_key])

    config["llm"] = llm
    config["quota"] = quota
    return config


def load_config(
    config_file: Optional[str] = None,
    plans_file: Optional[str] = None,
    env_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Build Settings from defaults, the TOML config file, the YAML plan table,
    a .env file and the process environment (later sources win).

    Call once at process start and pass the result to the components that need it.
    """
    config = get_default_config()

    path = config_file or DEFAULT_CONFIG_FILE
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            config = _merge(config, toml.load(f))

    env_vars: Dict[str, Optional[str]] = {}
    env_path = env_file or os.path.join(PROJECT_ROOT, ".env")
    if os.path.exists(env_path):
        env_vars.update(dotenv_values(env_path))
    env_vars.update(os.environ if environ is None else environ)

    config = apply_env_overrides(config, env_vars)
    return Settings.from_dict(config, load_plans(plans_file))
