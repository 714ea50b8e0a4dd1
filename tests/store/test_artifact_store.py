import threading

import pytest

from shortcraft.errors import VersionConflict
from shortcraft.store import ArtifactStore


def _project(store, email="owner@example.com"):
    account = store.ensure_account(email)
    return store.create_project(account["account_id"], title="Dentist outreach", idea="Get more patients")


def test_schema_tables_exist(tmp_path):
    store = ArtifactStore.open(tmp_path / "sc.db")
    names = {r["name"] for r in store.conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    assert {"meta", "accounts", "projects", "artifacts"} <= names


def test_versions_are_gapless(tmp_path):
    store = ArtifactStore.open(tmp_path / "sc.db")
    pid = _project(store)["project_id"]
    versions = [store.create_artifact(pid, "en", "hooks", [f"hook {i}"])["version"] for i in range(5)]
    assert versions == [1, 2, 3, 4, 5]
    assert store.next_version(pid, "en", "hooks") == 6


def test_versions_are_scoped_per_language_and_stage(tmp_path):
    store = ArtifactStore.open(tmp_path / "sc.db")
    pid = _project(store)["project_id"]
    assert store.create_artifact(pid, "en", "hooks", ["a"])["version"] == 1
    assert store.create_artifact(pid, "fr", "hooks", ["b"])["version"] == 1
    assert store.create_artifact(pid, "en", "storyboard", [])["version"] == 1
    assert store.create_artifact(pid, "EN ", "hooks", ["c"])["version"] == 2


def test_concurrent_creates_never_duplicate(tmp_path):
    db = tmp_path / "sc.db"
    setup = ArtifactStore.open(db)
    pid = _project(setup)["project_id"]
    setup.close()

    errors = []

    def worker(n):
        store = ArtifactStore.open(db)
        try:
            for i in range(5):
                store.create_artifact(pid, "en", "hooks", [f"worker {n} item {i}"])
        except Exception as e:  # surfaced by the assertion below
            errors.append(e)
        finally:
            store.close()

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    store = ArtifactStore.open(db)
    versions = [a["version"] for a in store.list_artifacts(pid, stage_kind="hooks", language_variant="en")]
    assert versions == list(range(1, 21))


def test_unique_collision_retries_then_gives_up(tmp_path, monkeypatch):
    import shortcraft.store.store as store_mod

    store = ArtifactStore.open(tmp_path / "sc.db")
    pid = _project(store)["project_id"]
    store.create_artifact(pid, "en", "hooks", ["first"])
    monkeypatch.setattr(store_mod, "MAX_VERSION_ATTEMPTS", 2)

    # Simulate a stale MAX(version) read: every insert reuses version 1.
    real_execute = store.conn.execute

    class StaleConn:
        def __getattr__(self, name):
            return getattr(store.conn_real, name)

        def execute(self, sql, params=()):
            if "COALESCE(MAX(version), 0) AS mx" in sql:
                return real_execute("SELECT 0 AS mx")
            return real_execute(sql, params)

    store.conn_real = store.conn
    store.conn = StaleConn()
    with pytest.raises(VersionConflict):
        store.create_artifact(pid, "en", "hooks", ["second"])
    store.conn = store.conn_real
    assert store.next_version(pid, "en", "hooks") == 2


def test_latest_and_latest_any(tmp_path):
    clock = iter(float(t) for t in range(100, 200))
    store = ArtifactStore.open(tmp_path / "sc.db", clock=lambda: next(clock))
    pid = _project(store)["project_id"]
    assert store.latest(pid, "en", "storyboard") is None
    assert store.latest_any(pid, "storyboard") is None

    store.create_artifact(pid, "fr", "storyboard", [{"scene": 1}])
    store.create_artifact(pid, "fr", "storyboard", [{"scene": 2}])
    store.create_artifact(pid, "en", "storyboard", [{"scene": 3}])

    assert store.latest(pid, "en", "storyboard")["content"] == [{"scene": 3}]
    any_latest = store.latest_any(pid, "storyboard")
    assert (any_latest["language_variant"], any_latest["version"]) == ("fr", 2)
    assert store.exists(pid, "fr", "storyboard")
    assert not store.exists(pid, "de", "storyboard")


def test_content_round_trips_as_json(tmp_path):
    store = ArtifactStore.open(tmp_path / "sc.db")
    pid = _project(store)["project_id"]
    content = {"meta": {"mode": "DYNAMIC", "mix": {"image": 4, "video": 2}}, "timeline": [], "exportNotes": ["é"]}
    row = store.create_artifact(pid, "fr", "editing_script", content)
    fetched = store.latest(pid, "fr", "editing_script")
    assert fetched["artifact_id"] == row["artifact_id"]
    assert fetched["content"] == content
    assert fetched["version"] == 1


def test_unknown_stage_kind_rejected(tmp_path):
    store = ArtifactStore.open(tmp_path / "sc.db")
    pid = _project(store)["project_id"]
    with pytest.raises(ValueError):
        store.create_artifact(pid, "en", "thumbnails", {})


def test_count_artifacts_since_scopes_to_account(tmp_path):
    now = {"t": 1000.0}
    store = ArtifactStore.open(tmp_path / "sc.db", clock=lambda: now["t"])
    mine = _project(store, "me@example.com")
    other = _project(store, "other@example.com")

    store.create_artifact(mine["project_id"], "en", "editing_script", {})
    now["t"] = 2000.0
    store.create_artifact(mine["project_id"], "fr", "editing_script", {})
    store.create_artifact(mine["project_id"], "en", "hooks", [])
    store.create_artifact(other["project_id"], "en", "editing_script", {})

    assert store.count_artifacts_since(mine["account_id"], ["editing_script"], 0) == 2
    assert store.count_artifacts_since(mine["account_id"], ["editing_script"], 2000.0) == 1
    assert store.count_artifacts_since(mine["account_id"], [], 0) == 0


def test_accounts_and_project_ownership(tmp_path):
    store = ArtifactStore.open(tmp_path / "sc.db")
    a = store.ensure_account("Owner@Example.com ")
    assert store.ensure_account("owner@example.com")["account_id"] == a["account_id"]
    project = store.create_project(a["account_id"], title="t", idea="i")
    b = store.ensure_account("intruder@example.com")
    assert store.get_project(project["project_id"], account_id=a["account_id"]) is not None
    assert store.get_project(project["project_id"], account_id=b["account_id"]) is None
    assert [p["project_id"] for p in store.list_projects(a["account_id"])] == [project["project_id"]]
