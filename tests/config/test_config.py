import pytest

from shortcraft.config import PlanLimits, get_default_config, load_config
from shortcraft.config.config import load_plans


def _missing_env(tmp_path):
    return str(tmp_path / "no.env")


def test_defaults_load(tmp_path):
    settings = load_config(env_file=_missing_env(tmp_path), environ={})
    assert settings.llm.model_id == "gpt-4o-mini"
    assert settings.quota.timezone == "America/Toronto"
    assert settings.quota.gated_stages == ("editing_script",)
    assert settings.quota.plans["FREE"] == PlanLimits(per_day=1, per_week=3)
    assert settings.quota.plans["AGENCY"] == PlanLimits(per_day=30, per_week=150)
    assert settings.editing.video_scene_cost == 3.0
    assert settings.llm.temperature_for("translate") == 0.2


def test_default_config_shape():
    config = get_default_config()
    assert set(config) >= {"database_path", "log_file", "llm", "quota", "editing"}


def test_toml_overrides_defaults(tmp_path):
    cfg = tmp_path / "config.toml"
    cfg.write_text(
        '[llm]\nmodel_id = "gpt-4.1-mini"\n\n[quota]\ntimezone = "Europe/Paris"\n\n[editing]\nvideo_scene_cost = 2.5\n',
        encoding="utf-8",
    )
    settings = load_config(config_file=str(cfg), env_file=_missing_env(tmp_path), environ={})
    assert settings.llm.model_id == "gpt-4.1-mini"
    assert settings.llm.timeout_sec == 60.0
    assert settings.quota.timezone == "Europe/Paris"
    assert settings.editing.video_scene_cost == 2.5


def test_env_file_then_environ(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "OPENAI_API_KEY=sk-file\nOPENAI_MODEL=file-model\nPRO_EMAILS=A@x.com, b@x.com\nQUOTA_DISABLED=false\n",
        encoding="utf-8",
    )
    settings = load_config(
        env_file=str(env_file),
        environ={
            "OPENAI_MODEL": "env-model",
            "OPENAI_MODEL_EDITING_SCRIPT": "editor-model",
            "ADMIN_EMAILS": "root@x.com",
            "SHORTCRAFT_DB_PATH": str(tmp_path / "db.sqlite"),
        },
    )
    assert settings.llm.api_key == "sk-file"
    assert settings.llm.model_id == "env-model"
    assert settings.llm.model_for("editing_script") == "editor-model"
    assert settings.llm.model_for("hooks") == "env-model"
    assert settings.quota.pro_emails == ("a@x.com", "b@x.com")
    assert settings.quota.plan_for("A@X.com") == "PRO"
    assert settings.quota.is_bypassed("root@x.com")
    assert not settings.quota.is_bypassed("a@x.com")
    assert settings.database_path == str(tmp_path / "db.sqlite")


def test_quota_disabled_flag(tmp_path):
    settings = load_config(env_file=_missing_env(tmp_path), environ={"QUOTA_DISABLED": "true"})
    assert settings.quota.disabled
    assert settings.quota.is_bypassed("anyone@example.com")


def test_highest_tier_wins(tmp_path):
    settings = load_config(
        env_file=_missing_env(tmp_path),
        environ={"STARTER_EMAILS": "x@y.com", "AGENCY_EMAILS": "x@y.com"},
    )
    assert settings.quota.plan_for("x@y.com") == "AGENCY"
    assert settings.quota.plan_for("nobody@y.com") == "FREE"
    assert settings.quota.plan_for(None) == "FREE"


def test_plans_yaml(tmp_path):
    plans = tmp_path / "plans.yaml"
    plans.write_text("plans:\n  FREE:\n    per_day: 2\n    per_week: 4\n", encoding="utf-8")
    assert load_plans(str(plans)) == {"FREE": {"per_day": 2, "per_week": 4}}
    settings = load_config(plans_file=str(plans), env_file=_missing_env(tmp_path), environ={})
    assert settings.quota.limits_for("FREE") == PlanLimits(2, 4)
    # Unknown tiers fall back to the default tier.
    assert settings.quota.limits_for("PRO") == PlanLimits(2, 4)


def test_unknown_default_plan_rejected(tmp_path):
    cfg = tmp_path / "config.toml"
    cfg.write_text('[quota]\ndefault_plan = "GOLD"\n', encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(config_file=str(cfg), env_file=_missing_env(tmp_path), environ={})
