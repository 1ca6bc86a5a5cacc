import subprocess

import build_container
from build_container import ContainerBuilder, image_tag, main, read_version


def test_image_tag():
    assert image_tag("gcr.io/glowforge_1/", "redis", "4.0.2", "7") == "gcr.io/glowforge_1/redis:4.0.2-7"


def test_read_version_strips_whitespace(tmp_path):
    version_file = tmp_path / "version.txt"
    version_file.write_text("12\n")
    assert read_version(version_file) == "12"


def test_push_commands(tmp_path):
    assert ContainerBuilder(tmp_path).push_command("r/i:1") == ["docker", "push", "r/i:1"]
    assert ContainerBuilder(tmp_path, push_with="gcloud").push_command("r/i:1") == [
        "gcloud", "docker", "--", "push", "r/i:1"
    ]


def test_build_and_push_runs_both_steps(tmp_path, monkeypatch):
    (tmp_path / "version.txt").write_text("3\n")
    calls = []
    monkeypatch.setattr(
        build_container.subprocess, "run",
        lambda cmd, cwd, check: calls.append(cmd),
    )

    code = main(["--context", str(tmp_path), "--registry", "reg", "--image", "redis"])

    assert code == 0
    assert calls == [
        ["docker", "build", "--tag=reg/redis:4.0.2-3", "."],
        ["docker", "push", "reg/redis:4.0.2-3"],
    ]


def test_failed_build_skips_push(tmp_path, monkeypatch):
    (tmp_path / "version.txt").write_text("3")
    calls = []

    def fail(cmd, cwd, check):
        calls.append(cmd)
        raise subprocess.CalledProcessError(1, cmd)

    monkeypatch.setattr(build_container.subprocess, "run", fail)

    assert main(["--context", str(tmp_path)]) == 1
    assert len(calls) == 1


def test_missing_version_file(tmp_path):
    assert main(["--context", str(tmp_path), "--dry-run"]) == 1


def test_dry_run(tmp_path, monkeypatch):
    (tmp_path / "version.txt").write_text("5")
    monkeypatch.setattr(build_container.subprocess, "run", None)

    assert main(["--context", str(tmp_path), "--dry-run"]) == 0
