"""Tests for the export writers and the command line entry point."""

import csv
import json
from unittest import mock

import pytest

from conftest import FakeSession, make_response, page_payload
from inoreader_exporter import (
    Credentials,
    ExporterConfig,
    Item,
    TokenStore,
    export_to_csv,
    export_to_json,
    main,
)

ITEMS = [
    Item('He said "hi"', "https://example.com/1"),
    Item("Café, naïve", "https://example.com/2"),
]


class TestExport:
    def test_csv_has_header_and_rows_in_order(self, tmp_path) -> None:
        path = tmp_path / "articles.csv"
        assert export_to_csv(ITEMS, str(path)) == 2

        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows == [
            ["title", "url"],
            ['He said "hi"', "https://example.com/1"],
            ["Café, naïve", "https://example.com/2"],
        ]
        assert path.read_text(encoding="utf-8").startswith('"title","url"')

    def test_json_document(self, tmp_path) -> None:
        path = tmp_path / "articles.json"
        export_to_json(ITEMS, str(path), "user/-/state/com.google/starred")

        document = json.loads(path.read_text(encoding="utf-8"))
        assert document["stream_id"] == "user/-/state/com.google/starred"
        assert document["total_items"] == 2
        assert document["items"] == [
            {"title": 'He said "hi"', "url": "https://example.com/1"},
            {"title": "Café, naïve", "url": "https://example.com/2"},
        ]
        assert list(document["items"][0]) == ["title", "url"]

    def test_no_temp_file_left_behind(self, tmp_path) -> None:
        export_to_csv([], str(tmp_path / "empty.csv"))
        assert sorted(p.name for p in tmp_path.iterdir()) == ["empty.csv"]


class TestConfig:
    def test_missing_file_gives_defaults(self, tmp_path) -> None:
        assert ExporterConfig.from_file(str(tmp_path / "nope.json")) == ExporterConfig()

    def test_known_keys_loaded_unknown_ignored(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"max_iterations": 3, "stream_id": "user/-/label/x", "color": "blue"}))
        config = ExporterConfig.from_file(str(path))
        assert config.max_iterations == 3
        assert config.stream_id == "user/-/label/x"
        assert config.page_size == 100


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("INOREADER_CLIENT_ID", "INOREADER_CLIENT_SECRET", "INOREADER_REDIRECT_URI"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def run(*args: str) -> int:
    return main(["--client-id", "app-id", "--client-secret", "app-key", "--log-file", "test.log", "--quiet", *args])


class TestMain:
    def test_missing_app_credentials(self, workdir) -> None:
        assert main(["--log-file", "test.log", "fetch"]) == 1

    def test_app_credentials_from_environment(self, workdir, monkeypatch) -> None:
        monkeypatch.setenv("INOREADER_CLIENT_ID", "env-id")
        monkeypatch.setenv("INOREADER_CLIENT_SECRET", "env-key")
        # Reaches the token file check, so credentials were accepted
        assert main(["--log-file", "test.log", "--quiet", "fetch"]) == 1
        assert not (workdir / "articles.csv").exists()

    def test_setup_refuses_existing_token_file(self, workdir) -> None:
        TokenStore(".config").save(Credentials(access_token="a"))
        with mock.patch("builtins.input") as prompt:
            assert run("setup", "--redirect-uri", "http://localhost/cb") == 1
        prompt.assert_not_called()

    def test_setup_requires_redirect_uri(self, workdir) -> None:
        assert run("setup") == 1

    def test_setup_stores_tokens(self, workdir) -> None:
        session = FakeSession([make_response(payload={
            "access_token": "a", "refresh_token": "r", "expires_in": 3600,
        })])
        with mock.patch("inoreader_exporter.requests.Session", return_value=session), \
                mock.patch("builtins.input", return_value="the-code"):
            assert run("setup", "--redirect-uri", "http://localhost/cb") == 0

        credentials = TokenStore(".config").load()
        assert credentials.authorization_code == "the-code"
        assert credentials.access_token == "a"
        assert len(credentials.state) == 30

    def test_setup_auth_failure_exits_nonzero(self, workdir) -> None:
        session = FakeSession([make_response(400, body="bad code")])
        with mock.patch("inoreader_exporter.requests.Session", return_value=session), \
                mock.patch("builtins.input", return_value="the-code"):
            assert run("setup", "--redirect-uri", "http://localhost/cb") == 1
        assert not (workdir / ".config").exists()

    def test_fetch_requires_token_file(self, workdir) -> None:
        assert run("fetch") == 1

    def test_fetch_with_unreadable_token_file_exits_nonzero(self, workdir) -> None:
        (workdir / ".config").write_bytes(b"AccessToken:\xff\n")
        session = FakeSession()
        with mock.patch("inoreader_exporter.requests.Session", return_value=session):
            assert run("fetch") == 1
        assert session.calls == []

    def test_fetch_exports_csv(self, workdir) -> None:
        TokenStore(".config").save(Credentials(access_token="a", refresh_token="r", expires_at=2**40))
        session = FakeSession([
            make_response(payload=page_payload(["one"], continuation="c1")),
            make_response(payload=page_payload(["two"])),
        ])
        with mock.patch("inoreader_exporter.requests.Session", return_value=session):
            assert run("fetch") == 0

        with open(workdir / "articles.csv", newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows == [["title", "url"], ["one", "https://example.com/one"], ["two", "https://example.com/two"]]

    def test_fetch_refreshes_expired_token_then_exports_json(self, workdir) -> None:
        TokenStore(".config").save(Credentials("code", "state", "old", "r", 1))
        session = FakeSession([
            make_response(payload={"access_token": "fresh", "refresh_token": "r2", "expires_in": 3600}),
            make_response(payload=page_payload(["one"])),
        ])
        with mock.patch("inoreader_exporter.requests.Session", return_value=session):
            assert run("fetch", "--export", "json", "--output", "out.json") == 0

        assert session.calls[1][2]["headers"] == {"Authorization": "Bearer fresh"}
        assert TokenStore(".config").load().refresh_token == "r2"
        document = json.loads((workdir / "out.json").read_text(encoding="utf-8"))
        assert document["total_items"] == 1

    def test_partial_fetch_still_exports(self, workdir) -> None:
        TokenStore(".config").save(Credentials(access_token="a", refresh_token="r", expires_at=2**40))
        session = FakeSession([
            make_response(payload=page_payload(["one"], continuation="c1")),
            make_response(500, body="oops"),
        ])
        with mock.patch("inoreader_exporter.requests.Session", return_value=session):
            assert run("fetch") == 0

        with open(workdir / "articles.csv", newline="", encoding="utf-8") as f:
            assert len(list(csv.reader(f))) == 2
