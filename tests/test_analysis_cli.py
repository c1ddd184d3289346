"""Tests for the blacklist analysis command line."""

import sys
from unittest.mock import patch

import pytest
import yaml

from variantstrip import analysis
from variantstrip.analysis import load_materials, parse_arguments
from variantstrip.settings import load_settings


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return str(path)


@pytest.fixture
def project(tmp_path):
    settings_file = write_yaml(
        tmp_path / "stripping_settings.yaml",
        {
            "mode": "strip_with_blacklist",
            "pass_types": ["ForwardBase"],
            "compiled_keywords": ["_NORMALMAP", "FOG_LINEAR"],
        },
    )
    write_yaml(
        tmp_path / "svc_blacklist.yaml",
        {
            "shaders": {
                "Standard": [
                    {"pass": "ForwardBase", "keywords": ["FOG_LINEAR", "_NORMALMAP"]},
                    {"pass": "ForwardBase", "keywords": ["_EMISSION"]},
                ]
            }
        },
    )
    materials_file = write_yaml(
        tmp_path / "materials.yaml",
        {
            "active_global_keywords": ["FOG_LINEAR"],
            "materials": [
                {
                    "name": "Rock",
                    "shader": "Standard",
                    "keywords": ["_NORMALMAP", {"name": "FOG_LINEAR", "overridable": True}],
                    "enabled": ["_NORMALMAP"],
                },
                {"name": "Gizmo", "shader": "Hidden/Internal-Colored", "keywords": [], "enabled": []},
            ],
        },
    )
    return tmp_path, settings_file, materials_file


def test_parse_arguments_defaults():
    with patch("sys.argv", ["analysis.py"]):
        args = parse_arguments()
        assert args.settings == "stripping_settings.yaml"
        assert args.materials == "materials.yaml"
        assert args.fix_all is False
        assert args.strict_local is None


def test_parse_arguments_invalid_strictness():
    with patch("sys.argv", ["analysis.py", "--strict-local", "maybe"]), pytest.raises(SystemExit):
        parse_arguments()


def test_load_materials(project):
    _, _, materials_file = project
    materials, active = load_materials(materials_file)
    assert active == ["FOG_LINEAR"]
    assert [m.name for m in materials] == ["Rock", "Gizmo"]
    assert materials[0].keyword_space[1].overridable is True
    assert materials[0].enabled_keywords == {"_NORMALMAP"}


def test_load_materials_missing_section(tmp_path):
    manifest = write_yaml(tmp_path / "materials.yaml", {"other": []})
    assert load_materials(manifest) == ([], [])


def test_main_missing_settings(monkeypatch, tmp_path):
    monkeypatch.setattr(sys, "argv", ["analysis.py", "--settings", str(tmp_path / "missing.yaml")])
    assert analysis.main() == 1


def test_main_requires_blacklist_mode(monkeypatch, tmp_path):
    settings_file = write_yaml(tmp_path / "stripping_settings.yaml", {"mode": "collect"})
    materials_file = write_yaml(tmp_path / "materials.yaml", {"materials": []})
    monkeypatch.setattr(sys, "argv", ["analysis.py", "--settings", settings_file, "--materials", materials_file])
    assert analysis.main() == 1


def test_main_reports_and_fixes(monkeypatch, capsys, project):
    """Test the CLI prints warnings, fixes them and persists discovered globals."""
    tmp_path, settings_file, materials_file = project
    monkeypatch.setattr(
        sys, "argv", ["analysis.py", "--settings", settings_file, "--materials", materials_file, "--fix-all"]
    )
    assert analysis.main() == 0

    out = capsys.readouterr().out
    assert "Rock (Standard)" in out
    assert "Warning: variants exist in blacklist" in out
    assert "Gizmo" not in out

    blacklist = yaml.safe_load((tmp_path / "svc_blacklist.yaml").read_text(encoding="utf-8"))
    assert blacklist == {"shaders": {"Standard": [{"pass": "ForwardBase", "keywords": ["_EMISSION"]}]}}
    settings = yaml.safe_load((tmp_path / "stripping_settings.yaml").read_text(encoding="utf-8"))
    assert settings["global_keywords"] == ["FOG_LINEAR"]


def test_main_warnings_only_without_fix(monkeypatch, capsys, project):
    tmp_path, settings_file, materials_file = project
    monkeypatch.setattr(
        sys,
        "argv",
        ["analysis.py", "--settings", settings_file, "--materials", materials_file, "--warnings-only"],
    )
    assert analysis.main() == 0
    assert "Rock (Standard)" in capsys.readouterr().out
    blacklist = yaml.safe_load((tmp_path / "svc_blacklist.yaml").read_text(encoding="utf-8"))
    assert len(blacklist["shaders"]["Standard"]) == 2


def test_main_strictness_overrides_are_not_saved(monkeypatch, project):
    """Test --strict-local/--strict-global apply to one run and leave the settings file as it was."""
    tmp_path, settings_file, materials_file = project
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "analysis.py",
            "--settings",
            settings_file,
            "--materials",
            materials_file,
            "--strict-local",
            "false",
            "--strict-global",
            "false",
        ],
    )
    assert analysis.main() == 0

    saved = yaml.safe_load((tmp_path / "stripping_settings.yaml").read_text(encoding="utf-8"))
    assert saved["strict_local_keywords"] is True
    assert saved["strict_global_keywords"] is True
    reloaded = load_settings(settings_file)
    assert reloaded.strict_local_keywords is True
    assert reloaded.strict_global_keywords is True


def test_load_materials_skips_keyword_without_name(tmp_path):
    """Test a keyword mapping without a name is skipped instead of failing the manifest."""
    manifest = write_yaml(
        tmp_path / "materials.yaml",
        {
            "materials": [
                {
                    "name": "Rock",
                    "shader": "Standard",
                    "keywords": [{"overridable": True}, "_NORMALMAP", 42],
                    "enabled": ["_NORMALMAP"],
                }
            ]
        },
    )
    materials, _ = load_materials(manifest)
    assert len(materials) == 1
    assert [k.name for k in materials[0].keyword_space] == ["_NORMALMAP"]


def test_load_materials_bad_shapes(tmp_path):
    """Test manifests whose sections have the wrong shape load as empty."""
    scalar = tmp_path / "scalar.yaml"
    scalar.write_text("just a string\n", encoding="utf-8")
    assert load_materials(str(scalar)) == ([], [])

    listed = write_yaml(tmp_path / "listed.yaml", {"materials": {"Rock": "Standard"}})
    assert load_materials(listed) == ([], [])

    entries = write_yaml(tmp_path / "entries.yaml", {"materials": ["Rock", {"name": "NoShader"}]})
    assert load_materials(entries) == ([], [])
