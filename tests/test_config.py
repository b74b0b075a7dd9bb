import pytest

from slate.slate_config import Settings, load_settings


def test_defaults():
    settings = Settings()
    assert settings.prelude.module == "slate.Prelude"
    assert settings.prelude.ref_suffix == "Ref"
    assert settings.prelude.placeholder_type == "a"
    assert settings.compiler.script_prefix == "Script"
    assert settings.compiler.max_errors == 20
    assert settings.logging.level == "WARNING"


def test_from_dict_overrides_some_keys():
    settings = Settings.from_dict({"prelude": {"module": "Host"}, "compiler": {"max_errors": 3}})
    assert settings.prelude.module == "Host"
    assert settings.prelude.ref_suffix == "Ref"
    assert settings.compiler.max_errors == 3


def test_empty_sections_use_defaults():
    assert Settings.from_dict({"prelude": None}).prelude.module == "slate.Prelude"


@pytest.mark.parametrize("data, message", [
    ({"prelud": {}}, "Unknown configuration section"),
    ({"prelude": {"modul": "X"}}, "Unknown key"),
    (["not", "a", "mapping"], "must be a mapping"),
])
def test_invalid_configuration(data, message):
    with pytest.raises(ValueError, match=message):
        Settings.from_dict(data)


def test_environment_variables_are_expanded(monkeypatch):
    monkeypatch.setenv("SLATE_PRELUDE", "Env.Prelude")
    settings = Settings.from_dict({"prelude": {"module": "${SLATE_PRELUDE}"}})
    assert settings.prelude.module == "Env.Prelude"


def test_from_yaml(tmp_path):
    path = tmp_path / "slate.yaml"
    path.write_text("prelude:\n  ref_suffix: Cell\nlogging:\n  level: DEBUG\n")
    settings = Settings.from_yaml(str(path))
    assert settings.prelude.ref_suffix == "Cell"
    assert settings.logging.level == "DEBUG"


def test_empty_yaml_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert Settings.from_yaml(str(path)) == Settings()


def test_load_settings_without_a_file(monkeypatch):
    monkeypatch.delenv("SLATE_CONFIG", raising=False)
    assert load_settings() == Settings()


def test_load_settings_from_environment(monkeypatch, tmp_path):
    path = tmp_path / "slate.yaml"
    path.write_text("compiler:\n  script_prefix: Eval\n")
    monkeypatch.setenv("SLATE_CONFIG", str(path))
    assert load_settings().compiler.script_prefix == "Eval"


def test_load_settings_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_settings(str(tmp_path / "missing.yaml"))
