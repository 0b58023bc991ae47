"""Tests for the configuration file."""

import json
from pathlib import Path

import pytest

from autoupload.models.simple_config import (
    ACCESS_TOKEN_ENV,
    ConfigError,
    MissingCredentialsError,
    SimpleConfig,
    credentials_present,
    load_config,
    template_config,
)
from autoupload.models.sync_types import FilePair, Policy


@pytest.fixture(autouse=True)
def no_token_env(monkeypatch):
    monkeypatch.delenv(ACCESS_TOKEN_ENV, raising=False)


@pytest.fixture
def document():
    return {
        "accessToken": "token123",
        "minUpdateInterval": 60,
        "files": [
            {"localPath": "/home/user/notes.txt", "remotePath": "/notes.txt"},
            {"localPath": "/home/user/todo.md", "remotePath": "/lists/todo.md"},
        ],
    }


def test_from_document(document):
    config = SimpleConfig.from_document(document, require_credentials=True)

    assert config.access_token == "token123"
    assert config.remote == "dropbox"
    assert config.min_update_interval == 60.0
    assert config.files == [
        FilePair(Path("/home/user/notes.txt"), "/notes.txt"),
        FilePair(Path("/home/user/todo.md"), "/lists/todo.md"),
    ]
    assert config.policy == Policy(60.0)


def test_min_update_interval_defaults_to_zero(document):
    del document["minUpdateInterval"]

    config = SimpleConfig.from_document(document)

    assert config.min_update_interval == 0.0


@pytest.mark.parametrize("value", ["60", -1, True, [5]])
def test_invalid_min_update_interval(document, value):
    document["minUpdateInterval"] = value

    with pytest.raises(ConfigError, match="minUpdateInterval"):
        SimpleConfig.from_document(document)


def test_missing_files(document):
    del document["files"]

    with pytest.raises(ConfigError, match="files"):
        SimpleConfig.from_document(document)


def test_file_entry_missing_remote_path(document):
    document["files"].append({"localPath": "/tmp/x"})

    with pytest.raises(ConfigError, match=r"files\[2\] is missing remotePath"):
        SimpleConfig.from_document(document)


def test_duplicate_file_entries_are_skipped(document):
    document["files"].append(dict(document["files"][0]))

    config = SimpleConfig.from_document(document)

    assert len(config.files) == 2


def test_unknown_remote(document):
    document["remote"] = "ftp"

    with pytest.raises(ConfigError, match="Unknown remote"):
        SimpleConfig.from_document(document)


def test_document_must_be_object():
    with pytest.raises(ConfigError):
        SimpleConfig.from_document(["not", "a", "mapping"])


def test_missing_access_token(document):
    del document["accessToken"]

    config = SimpleConfig.from_document(document)

    assert config.access_token is None

    with pytest.raises(MissingCredentialsError):
        SimpleConfig.from_document(document, require_credentials=True)


def test_missing_token_reported_before_invalid_fields():
    """Without a token the files list is never validated."""
    with pytest.raises(MissingCredentialsError):
        SimpleConfig.from_document({"minUpdateInterval": 5}, require_credentials=True)

    with pytest.raises(MissingCredentialsError):
        SimpleConfig.from_document({"minUpdateInterval": "soon", "files": "x"}, require_credentials=True)


def test_access_token_from_environment(document, monkeypatch):
    del document["accessToken"]
    monkeypatch.setenv(ACCESS_TOKEN_ENV, "env-token")

    config = SimpleConfig.from_document(document)

    assert config.access_token == "env-token"


def test_s3_settings(document):
    document["remote"] = "s3"
    document["s3"] = {
        "bucket": "my-bucket",
        "region": "eu-west-1",
        "prefix": "mirror",
        "accessKeyId": "AKIA",
        "secretAccessKey": "secret",
    }

    config = SimpleConfig.from_document(document, require_credentials=True)

    assert config.s3_bucket == "my-bucket"
    assert config.s3_region == "eu-west-1"
    assert config.s3_prefix == "mirror"


def test_s3_without_keys_has_no_credentials(document):
    document["remote"] = "s3"
    document["s3"] = {"bucket": "my-bucket"}

    with pytest.raises(MissingCredentialsError):
        SimpleConfig.from_document(document, require_credentials=True)


def test_credentials_present():
    assert credentials_present("dropbox", "token", None, None) is True
    assert credentials_present("dropbox", None, "AKIA", "secret") is False
    assert credentials_present("s3", "token", "AKIA", None) is False
    assert credentials_present("s3", None, "AKIA", "secret") is True


def test_load_json_file(tmp_path, document):
    config_path = tmp_path / "autoupload.json"
    config_path.write_text(json.dumps(document))

    config = load_config(config_path)

    assert config.access_token == "token123"
    assert len(config.files) == 2


def test_load_yaml_file(tmp_path):
    config_path = tmp_path / "autoupload.yaml"
    config_path.write_text(
        "accessToken: token123\n"
        "minUpdateInterval: 1.5\n"
        "files:\n"
        "  - localPath: /tmp/a.txt\n"
        "    remotePath: /a.txt\n"
    )

    config = load_config(config_path)

    assert config.min_update_interval == 1.5
    assert config.files == [FilePair(Path("/tmp/a.txt"), "/a.txt")]


def test_load_malformed_file(tmp_path):
    config_path = tmp_path / "autoupload.json"
    config_path.write_text('{"accessToken": "token123", "files": [')

    with pytest.raises(ConfigError, match="Unable to read configuration file"):
        load_config(config_path)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.json")


def test_save_json_and_load(tmp_path, document):
    config_path = tmp_path / "nested" / "autoupload.json"

    SimpleConfig.from_document(document).save(config_path)

    assert json.loads(config_path.read_text()) == {
        "accessToken": "token123",
        "remote": "dropbox",
        "minUpdateInterval": 60.0,
        "files": document["files"],
    }
    assert load_config(config_path).files == SimpleConfig.from_document(document).files


def test_template_config_is_loadable_but_has_no_token(tmp_path):
    config_path = tmp_path / "autoupload.yaml"

    template_config().save(config_path)
    config = load_config(config_path)

    assert config.min_update_interval == 60.0
    assert len(config.files) == 1
    assert config.access_token is None

    with pytest.raises(MissingCredentialsError):
        load_config(config_path, require_credentials=True)
