import json

import pytest
from fastapi.testclient import TestClient

from shortcraft.config import load_config
from shortcraft.server import create_app

EMAIL = "owner@clinic.com"
HEADERS = {"X-Account-Email": EMAIL}

SCENES = [
    {"scene": i, "onScreenText": f"T{i}", "voiceover": f"V{i}.", "visual": f"Vis{i}"} for i in range(1, 7)
]


class FakeGenerator:
    def __init__(self):
        self.replies = {
            "hooks": '["Hook one", "Hook two"]',
            "storyboard": json.dumps(SCENES),
            "video_prompts": json.dumps(
                [{"sceneNumber": s["scene"], "variants": {"GENERIC": f"SCENE: {s['visual']}"}} for s in SCENES]
            ),
            "editing_script": json.dumps({"timeline": [{"clip": "c"}], "exportNotes": []}),
        }

    def generate(self, system, user, stage=None):
        return self.replies[stage]


@pytest.fixture
def gen():
    return FakeGenerator()


@pytest.fixture
def client(tmp_path, gen):
    settings = load_config(
        env_file=str(tmp_path / "none.env"),
        environ={
            "SHORTCRAFT_DB_PATH": str(tmp_path / "api.db"),
            "SHORTCRAFT_LOG_FILE": str(tmp_path / "api.log"),
        },
    )
    return TestClient(create_app(settings=settings, generator=gen))


def _project(client):
    resp = client.post("/projects", json={"title": "Dentist outreach", "idea": "More patients"}, headers=HEADERS)
    assert resp.status_code == 200
    return resp.json()["project_id"]


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_missing_account_is_401(client):
    resp = client.get("/projects")
    assert resp.status_code == 401
    assert resp.json()["code"] == "UNAUTHORIZED"


def test_projects_are_scoped_to_account(client):
    pid = _project(client)
    mine = client.get("/projects", headers=HEADERS).json()["projects"]
    theirs = client.get("/projects", headers={"X-Account-Email": "other@x.com"}).json()["projects"]
    assert [p["project_id"] for p in mine] == [pid]
    assert theirs == []

    resp = client.post("/generate/hooks", json={"project_id": pid}, headers={"X-Account-Email": "other@x.com"})
    assert resp.status_code == 404


def test_hooks_then_skip(client):
    pid = _project(client)
    first = client.post("/generate/hooks", json={"project_id": pid, "locale": "en"}, headers=HEADERS).json()
    assert first["ok"] and not first["skipped"]
    assert first["version"] == 1
    second = client.post("/generate/hooks", json={"project_id": pid, "locale": "en"}, headers=HEADERS).json()
    assert second["skipped"]


def test_missing_dependency_is_400(client):
    pid = _project(client)
    resp = client.post("/generate/storyboard", json={"project_id": pid}, headers=HEADERS)
    assert resp.status_code == 400
    body = resp.json()
    assert body["missing"] == "hooks"
    assert body["error"] == "Hooks not found. Generate hooks first."


def test_malformed_output_is_502(client, gen):
    pid = _project(client)
    gen.replies["hooks"] = "no json here"
    resp = client.post("/generate/hooks", json={"project_id": pid}, headers=HEADERS)
    assert resp.status_code == 502
    assert resp.json()["raw"] == "no json here"


def test_editing_script_and_quota(client):
    pid = _project(client)
    for path in ("/generate/hooks", "/generate/storyboard", "/generate/video-prompts"):
        assert client.post(path, json={"project_id": pid}, headers=HEADERS).status_code == 200

    body = {"project_id": pid, "mode": "DYNAMIC", "max_video_scenes": 4}
    resp = client.post("/generate/editing-script", json=body, headers=HEADERS)
    assert resp.status_code == 200
    meta = resp.json()["content"]["meta"]
    assert meta["productionMode"] == "PREMIUM"
    assert meta["sceneCount"] == 6

    quota = client.get("/quota", headers=HEADERS).json()
    assert quota["usage"] == {"today": 1, "week": 1}
    assert quota["allowed"] is False

    resp = client.post("/generate/editing-script", json=body, headers=HEADERS)
    assert resp.status_code == 429
    assert resp.json()["code"] == "QUOTA_EXCEEDED"
    assert resp.json()["remaining"] == {"today": 0, "week": 2}


def test_select_hook_and_read_output(client):
    pid = _project(client)
    resp = client.post("/projects/select-hook", json={"project_id": pid, "hook": "Hook two", "language": "fr"}, headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json()["language_variant"] == "fr"

    out = client.get(f"/projects/{pid}/outputs/selected_hook", params={"locale": "en"}, headers=HEADERS)
    assert out.status_code == 200
    assert out.json()["content"]["hook"] == "Hook two"


def test_bad_requests_are_400(client):
    pid = _project(client)
    assert client.get(f"/projects/{pid}/outputs/thumbnails", headers=HEADERS).status_code == 400
    resp = client.post(
        "/generate/editing-script", json={"project_id": pid, "max_video_scenes": 3}, headers=HEADERS
    )
    assert resp.status_code == 400


def test_video_prompts_rendered_for_tool(client):
    pid = _project(client)
    for path in ("/generate/hooks", "/generate/storyboard", "/generate/video-prompts"):
        assert client.post(path, json={"project_id": pid}, headers=HEADERS).status_code == 200

    resp = client.get(f"/projects/{pid}/outputs/video_prompts", params={"format": "CAPCUT"}, headers=HEADERS)
    assert resp.status_code == 200
    formatted = resp.json()["content"]["formatted"]
    assert len(formatted) == len(SCENES)
    assert formatted[0]["prompt"].splitlines()[:3] == [
        "# Scene 1 - Scene 1",
        "TOOL: CapCut (Edit Plan)",
        "SHOT: Vis1",
    ]

    plain = client.get(f"/projects/{pid}/outputs/video_prompts", headers=HEADERS).json()
    assert "formatted" not in plain["content"]

    bad = client.get(f"/projects/{pid}/outputs/video_prompts", params={"format": "SORA"}, headers=HEADERS)
    assert bad.status_code == 400
