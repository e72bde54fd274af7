from pathlib import Path
from textwrap import dedent

import pytest

from mpinstall.exceptions import ManifestMissingError, ManifestParseError
from mpinstall.manifest import EntryKind, load_manifest, parse_manifest

FULL_MANIFEST = dedent(
    """
    Profile:
      name: Skyblock Pack
      versionId: 1.20.1-forge-47.2.0
      icon: Grass
      javaArgs: -Xmx6G
    ModLoader:
      name: Forge
      url: https://maven.example.com/forge-installer.jar
      autoOpen: true
    CurseForgeMods:
      - name: JEI
        projectId: 238222
        fileId: 4712866
      - name: Legacy
        modId: 12
        fileId: 34
    OtherMods:
      - name: Sodium
        url: https://cdn.example.com/sodium.jar
        filename: sodium-fabric.jar
    CurseForgeResources:
      - name: Faithful
        projectId: 236821
        fileId: 4567
        directory: resourcepacks
    OtherResources:
      - name: Shaders
        url: https://cdn.example.com/shaders.zip
        directory: shaderpacks
      - name: Readme
        url: https://cdn.example.com/README.txt
    """
)


def test_full_manifest_builds_ordered_batches():
    configuration = parse_manifest(FULL_MANIFEST)

    assert configuration.profile.name == "Skyblock Pack"
    assert configuration.profile.version_id == "1.20.1-forge-47.2.0"
    assert configuration.profile.icon == "Grass"
    assert configuration.profile.java_args == "-Xmx6G"

    loader = configuration.mod_loader
    assert loader.kind is EntryKind.MOD_LOADER
    assert loader.auto_launch is True
    assert loader.target_directory == Path(".")

    assert [e.name for e in configuration.mod_batch()] == ["JEI", "Legacy", "Sodium"]
    assert [e.name for e in configuration.resource_batch()] == ["Faithful", "Shaders", "Readme"]
    assert [e.name for e in configuration.all_entries()] == [
        "Forge", "JEI", "Legacy", "Sodium", "Faithful", "Shaders", "Readme",
    ]


def test_curseforge_entries_use_download_url_and_mods_dir():
    configuration = parse_manifest(FULL_MANIFEST)
    jei, legacy = configuration.curseforge_mods

    assert jei.source_url == "https://www.curseforge.com/api/v1/mods/238222/files/4712866/download"
    assert legacy.source_url == "https://www.curseforge.com/api/v1/mods/12/files/34/download"
    assert jei.target_directory == Path("mods")
    assert jei.cached_file_name is None


def test_explicit_filename_and_directories_carry_over():
    configuration = parse_manifest(FULL_MANIFEST)
    sodium = configuration.other_mods[0]
    faithful = configuration.curseforge_resources[0]
    shaders, readme = configuration.other_resources

    assert sodium.cached_file_name == "sodium-fabric.jar"
    assert sodium.kind is EntryKind.MOD
    assert faithful.target_directory == Path("resourcepacks")
    assert faithful.kind is EntryKind.CURSEFORGE_RESOURCE
    assert shaders.target_directory == Path("shaderpacks")
    assert readme.target_directory == Path(".")


def test_minimal_manifest_has_empty_batches():
    configuration = parse_manifest("Profile:\n  name: Tiny\n  versionId: 1.20.1\nCurseForgeMods:\n")

    assert configuration.mod_loader is None
    assert configuration.mod_loader_batch() == []
    assert configuration.mod_batch() == []
    assert configuration.resource_batch() == []


def test_unknown_keys_are_ignored():
    configuration = parse_manifest(
        "Profile:\n  name: Tiny\n  versionId: 1.20.1\n  extra: yes\nComment: hello\n"
    )
    assert configuration.profile.name == "Tiny"


@pytest.mark.parametrize(
    "text",
    [
        "ModLoader:\n  name: Forge\n  url: https://example.com/f.jar\n",
        "Profile:\n  name: ''\n  versionId: 1.20.1\n",
        "Profile:\n  name: P\n  versionId: 1.20.1\nCurseForgeMods:\n  - name: Bad\n    projectId: 0\n    fileId: 1\n",
        "Profile:\n  name: P\n  versionId: 1.20.1\nOtherMods:\n  - name: NoUrl\n",
        "Profile: [unclosed\n",
        "- just\n- a list\n",
        "",
    ],
)
def test_invalid_manifests_are_rejected(text):
    with pytest.raises(ManifestParseError):
        parse_manifest(text)


@pytest.mark.parametrize("directory", ["../outside", "/etc", "C:/Windows", "packs/../../up", "a:b"])
def test_resource_directories_must_stay_inside_install_root(directory):
    text = (
        "Profile:\n  name: P\n  versionId: 1.20.1\n"
        "OtherResources:\n"
        f"  - name: R\n    url: https://example.com/r.zip\n    directory: '{directory}'\n"
    )
    with pytest.raises(ManifestParseError):
        parse_manifest(text)


def test_blank_resource_directory_means_install_root():
    configuration = parse_manifest(
        "Profile:\n  name: P\n  versionId: 1.20.1\n"
        "CurseForgeResources:\n  - name: R\n    projectId: 1\n    fileId: 2\n    directory: ''\n"
    )
    assert configuration.curseforge_resources[0].target_directory == Path(".")


def test_load_manifest_reads_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(FULL_MANIFEST, encoding="utf-8")

    assert load_manifest(path).profile.name == "Skyblock Pack"


def test_missing_manifest_raises(tmp_path):
    with pytest.raises(ManifestMissingError) as excinfo:
        load_manifest(tmp_path / "config.yaml")
    assert "No config file found" in str(excinfo.value)


@pytest.mark.parametrize("filename", ["../evil.jar", "sub/dir.jar", "..", "C:evil.jar"])
def test_explicit_filename_must_be_a_plain_name(filename):
    text = (
        "Profile:\n  name: P\n  versionId: 1.20.1\n"
        f"OtherMods:\n  - name: M\n    url: https://example.com/m.jar\n    filename: {filename!r}\n"
    )
    with pytest.raises(ManifestParseError):
        parse_manifest(text)


@pytest.mark.parametrize(("raw", "expected"), [("1.21", "1.21"), ("1.10", "1.10"), ("21", "21")])
def test_numeric_looking_version_ids_keep_their_text(raw, expected):
    configuration = parse_manifest(f"Profile:\n  name: Pack\n  versionId: {raw}\n")
    assert configuration.profile.version_id == expected
