import json

from fastapi.testclient import TestClient

from chore_api.generate_openapi import generate_openapi
from chore_api.main import create_app
from chore_api.settings import Settings, get_settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in [
            "PERSISTENCE_BACKEND",
            "SQLITE_DB_PATH",
            "CORS_ALLOW_ORIGINS",
            "LOG_LEVEL",
            "GENERATION_COUNT",
        ]:
            monkeypatch.delenv(name, raising=False)
        settings = get_settings()
        assert settings == Settings()
        assert settings.persistence_backend == "memory"
        assert settings.cors_allow_origins == ["*"]
        assert settings.generation_count == 30

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("PERSISTENCE_BACKEND", "SQLite")
        monkeypatch.setenv("SQLITE_DB_PATH", "/tmp/x/chores.db")
        monkeypatch.setenv("CORS_ALLOW_ORIGINS", "http://a.test, http://b.test")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("GENERATION_COUNT", "12")
        settings = get_settings()
        assert settings.persistence_backend == "sqlite"
        assert settings.sqlite_db_path == "/tmp/x/chores.db"
        assert settings.cors_allow_origins == ["http://a.test", "http://b.test"]
        assert settings.log_level == "DEBUG"
        assert settings.generation_count == 12

    def test_invalid_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("PERSISTENCE_BACKEND", "postgres")
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        monkeypatch.setenv("GENERATION_COUNT", "0")
        settings = get_settings()
        assert settings.persistence_backend == "memory"
        assert settings.log_level == "INFO"
        assert settings.generation_count == 30


class TestAppFactory:
    def test_sqlite_backed_app(self, tmp_path):
        settings = Settings(persistence_backend="sqlite", sqlite_db_path=str(tmp_path / "app.db"))
        client = TestClient(create_app(settings=settings))
        assert client.get("/").json()["backend"] == "sqlite"

        payload = {"title": "Trash", "amount": "1.00", "frequency": "daily", "start_date": "2024-01-01", "count": 2}
        assert client.post("/api/v1/templates", json=payload).status_code == 201

        # A second app over the same file sees the stored data
        other = TestClient(create_app(settings=settings))
        assert other.get("/api/v1/instances").json()["total"] == 2

    def test_generation_count_setting(self):
        client = TestClient(create_app(settings=Settings(generation_count=4)))
        payload = {"title": "Trash", "amount": "1.00", "frequency": "weekly", "start_date": "2024-01-01"}
        assert client.post("/api/v1/templates", json=payload).json()["instance_count"] == 4

    def test_apps_do_not_share_state(self):
        a = TestClient(create_app(settings=Settings()))
        b = TestClient(create_app(settings=Settings()))
        payload = {"title": "Trash", "amount": "1.00", "frequency": "one-time", "start_date": "2024-01-01"}
        a.post("/api/v1/templates", json=payload)
        assert b.get("/api/v1/templates").json() == []


class TestOpenAPI:
    def test_generate_openapi_writes_schema(self, tmp_path):
        out = tmp_path / "interfaces" / "openapi.json"
        path = generate_openapi(str(out))
        assert path == str(out)
        schema = json.loads(out.read_text(encoding="utf-8"))
        assert "/api/v1/templates" in schema["paths"]
        assert "/api/v1/payouts" in schema["paths"]
        assert {t["name"] for t in schema["tags"]} >= {"templates", "instances", "payouts"}
