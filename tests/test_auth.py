"""Tests for the auth module."""

import base64
import os

from specrun.auth import (
    ENV_PLACEHOLDER_COMMENT,
    apply_authentication,
    build_auth_records,
    ensure_env_keys_for_specs,
    load_auth_config,
)
from specrun.models import AuthRecord


class TestBuildAuthRecords:
    """Test classification of environment variables."""

    def test_api_key(self):
        records = build_auth_records({"CARS_API_KEY": "abc"})
        assert records == {"cars": AuthRecord(type="apiKey", token="abc", header_name="X-API-Key")}

    def test_token_is_bearer(self):
        records = build_auth_records({"CARS_TOKEN": "xyz"})
        assert records == {"cars": AuthRecord(type="bearer", token="xyz")}

    def test_bearer_token(self):
        records = build_auth_records({"GITHUB_BEARER_TOKEN": "ghp"})
        assert records["github"].type == "bearer"
        assert records["github"].token == "ghp"
        assert "github_bearer" not in records

    def test_bearer_promotes_api_key(self):
        """Both present: the later bearer signal wins."""
        records = build_auth_records({"CARS_API_KEY": "abc", "CARS_TOKEN": "xyz"})
        assert records["cars"].type == "bearer"
        assert records["cars"].token == "xyz"

    def test_api_key_never_demotes_bearer(self):
        records = build_auth_records({"CARS_TOKEN": "xyz", "CARS_API_KEY": "abc"})
        assert records["cars"].type == "bearer"
        # The value still lands in the shared token slot
        assert records["cars"].token == "abc"
        assert records["cars"].header_name == "X-API-Key"

    def test_basic(self):
        records = build_auth_records({"JIRA_USERNAME": "me", "JIRA_PASSWORD": "pw"})
        assert records == {"jira": AuthRecord(type="basic", username="me", password="pw")}

    def test_empty_values_ignored(self):
        assert build_auth_records({"CARS_API_KEY": ""}) == {}

    def test_unrelated_ignored(self):
        assert build_auth_records({"HOME": "/root", "CARS_SERVER_URL": "https://x"}) == {}

    def test_multi_word_api_name(self):
        records = build_auth_records({"MY_COOL_API_API_KEY": "k"})
        assert "my_cool_api" in records


class TestApplyAuthentication:
    def test_bearer(self):
        headers = apply_authentication({"Accept": "application/json"}, AuthRecord(type="bearer", token="t"))
        assert headers["Authorization"] == "Bearer t"
        assert headers["Accept"] == "application/json"

    def test_api_key(self):
        record = AuthRecord(type="apiKey", token="k", header_name="X-API-Key")
        assert apply_authentication({}, record) == {"X-API-Key": "k"}

    def test_basic(self):
        headers = apply_authentication({}, AuthRecord(type="basic", username="u", password="p"))
        assert headers["Authorization"] == "Basic " + base64.b64encode(b"u:p").decode()

    def test_incomplete_basic_is_noop(self):
        assert apply_authentication({}, AuthRecord(type="basic", username="u")) == {}

    def test_unknown_type_is_noop(self):
        assert apply_authentication({"A": "1"}, AuthRecord(type="oauth2", token="t")) == {"A": "1"}

    def test_none(self):
        assert apply_authentication({"A": "1"}, None) == {"A": "1"}

    def test_input_not_mutated(self):
        headers = {"A": "1"}
        apply_authentication(headers, AuthRecord(type="bearer", token="t"))
        assert headers == {"A": "1"}


class TestEnvFile:
    """Test .env loading and placeholder keys."""

    def test_load_overlays_process_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CARS_API_KEY", "old")
        (tmp_path / ".env").write_text("CARS_API_KEY=new\nBOATS_TOKEN=b\n")
        records = load_auth_config(tmp_path)
        assert records["cars"].token == "new"
        assert records["boats"].type == "bearer"
        assert os.environ["CARS_API_KEY"] == "new"

    def test_recomputed_each_time(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CARS_API_KEY", raising=False)
        monkeypatch.delenv("CARS_TOKEN", raising=False)
        env = tmp_path / ".env"
        env.write_text("CARS_API_KEY=abc\n")
        assert load_auth_config(tmp_path)["cars"].type == "apiKey"
        env.write_text("CARS_API_KEY=abc\nCARS_TOKEN=xyz\n")
        assert load_auth_config(tmp_path)["cars"].type == "bearer"

    def test_placeholders_added(self, tmp_path):
        added = ensure_env_keys_for_specs(tmp_path, [tmp_path / "cars.json", tmp_path / "pets-openapi.yaml"])
        assert added == ["CARS_SERVER_URL", "CARS_BEARER_TOKEN", "PETS_SERVER_URL", "PETS_BEARER_TOKEN"]
        lines = (tmp_path / ".env").read_text().splitlines()
        assert lines[0] == ENV_PLACEHOLDER_COMMENT
        assert "CARS_SERVER_URL=" in lines

    def test_existing_keys_kept(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text("CARS_SERVER_URL=https://cars.test")
        added = ensure_env_keys_for_specs(tmp_path, [tmp_path / "cars.json"])
        assert added == ["CARS_BEARER_TOKEN"]
        assert env.read_text() == (
            f"CARS_SERVER_URL=https://cars.test\n{ENV_PLACEHOLDER_COMMENT}\nCARS_BEARER_TOKEN=\n"
        )

    def test_marker_written_once(self, tmp_path):
        ensure_env_keys_for_specs(tmp_path, [tmp_path / "cars.json"])
        ensure_env_keys_for_specs(tmp_path, [tmp_path / "boats.json"])
        content = (tmp_path / ".env").read_text()
        assert content.count(ENV_PLACEHOLDER_COMMENT) == 1
        assert "BOATS_BEARER_TOKEN=" in content

    def test_nothing_missing_leaves_file_alone(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text("CARS_SERVER_URL=\nCARS_BEARER_TOKEN=\n")
        assert ensure_env_keys_for_specs(tmp_path, [tmp_path / "cars.json"]) == []
        assert env.read_text() == "CARS_SERVER_URL=\nCARS_BEARER_TOKEN=\n"
