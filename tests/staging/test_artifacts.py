import io
import os
import tarfile
from pathlib import Path
from unittest.mock import patch

import pytest

from benchsuite.exceptions import ArtifactNotFoundError, BinaryMissingError, CommandError
from benchsuite.staging import artifacts
from benchsuite.staging.artifacts import (
    download_pr_artifact,
    download_release,
    extract_binaries,
    pr_artifact_name,
    release_asset_name,
    stage_artifact,
    verify_binaries,
)


def _make_archive(path: Path, members: dict) -> Path:
    with tarfile.open(path, "w:gz") as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return path


class TestNames:
    def test_release_asset_name(self):
        assert (
            release_asset_name("v1.2.600-nightly")
            == "databend-v1.2.600-nightly-x86_64-unknown-linux-gnu.tar.gz"
        )

    def test_release_asset_name_other_target(self):
        assert release_asset_name("v1", "aarch64-unknown-linux-gnu") == (
            "databend-v1-aarch64-unknown-linux-gnu.tar.gz"
        )

    def test_pr_artifact_name(self):
        assert pr_artifact_name("9e8d7c6") == "release-9e8d7c6-x86_64-unknown-linux-gnu"


class TestExtractBinaries:
    def test_strips_first_component_of_bin_entries(self, tmp_path):
        archive = _make_archive(
            tmp_path / "databend.tar.gz",
            {
                "bin/databend-query": b"query",
                "bin/databend-meta": b"meta",
                "bin/databend-metactl": b"metactl",
                "configs/databend-query.toml": b"[query]",
                "readme.txt": b"hi",
            },
        )
        dest = tmp_path / "target" / "release"

        extracted = extract_binaries(archive, dest)

        assert sorted(p.name for p in extracted) == [
            "databend-meta",
            "databend-metactl",
            "databend-query",
        ]
        assert (dest / "databend-query").read_bytes() == b"query"
        assert not (dest / "configs").exists()
        assert not (dest / "readme.txt").exists()
        assert os.access(dest / "databend-query", os.X_OK)
        assert os.access(dest / "databend-meta", os.X_OK)

    def test_accepts_dot_prefixed_members(self, tmp_path):
        archive = _make_archive(tmp_path / "a.tar.gz", {"./bin/databend-query": b"q"})
        extract_binaries(archive, tmp_path / "out")
        assert (tmp_path / "out" / "databend-query").is_file()

    def test_skips_parent_traversal(self, tmp_path):
        archive = _make_archive(
            tmp_path / "a.tar.gz",
            {"bin/../../escape": b"x", "bin/databend-query": b"q"},
        )
        extract_binaries(archive, tmp_path / "out")
        assert not (tmp_path / "escape").exists()

    def test_no_bin_entries(self, tmp_path):
        archive = _make_archive(tmp_path / "a.tar.gz", {"lib/libfoo.so": b"x"})
        with pytest.raises(BinaryMissingError, match="No bin/ entries"):
            extract_binaries(archive, tmp_path / "out")

    def test_corrupt_archive(self, tmp_path):
        archive = tmp_path / "broken.tar.gz"
        archive.write_bytes(b"definitely not a tarball")
        with pytest.raises(ArtifactNotFoundError, match="Failed to extract"):
            extract_binaries(archive, tmp_path / "out")


class TestDownloadRelease:
    @patch("benchsuite.staging.artifacts.run_command")
    def test_downloads_into_distro(self, mock_run, tmp_path):
        asset = release_asset_name("v1.2.3")

        def fake_gh(cmd, **kwargs):
            (tmp_path / "distro" / asset).write_bytes(b"archive")

        mock_run.side_effect = fake_gh

        archive = download_release("v1.2.3", workdir=str(tmp_path))

        assert archive == tmp_path / "distro" / asset
        cmd = mock_run.call_args.args[0]
        assert cmd[:4] == ["gh", "release", "download", "v1.2.3"]
        assert cmd[cmd.index("--pattern") + 1] == asset
        assert cmd[cmd.index("--dir") + 1] == str(tmp_path / "distro")

    @patch("benchsuite.staging.artifacts.run_command")
    def test_missing_asset(self, mock_run, tmp_path):
        mock_run.side_effect = CommandError("no assets match the file pattern", returncode=1)
        with pytest.raises(ArtifactNotFoundError, match="could not be downloaded"):
            download_release("v0.0.0", workdir=str(tmp_path))

    @patch("benchsuite.staging.artifacts.run_command")
    def test_command_succeeds_without_file(self, mock_run, tmp_path):
        with pytest.raises(ArtifactNotFoundError, match="not found"):
            download_release("v1.2.3", workdir=str(tmp_path))


class TestDownloadPrArtifact:
    @patch("benchsuite.staging.artifacts.run_command")
    def test_downloads_named_artifact(self, mock_run, tmp_path):
        def fake_gh(cmd, **kwargs):
            dest = Path(cmd[cmd.index("--dir") + 1])
            (dest / "databend-query").write_bytes(b"q")
            (dest / "databend-query").chmod(0o644)

        mock_run.side_effect = fake_gh

        dest = download_pr_artifact("9e8d7c6", workdir=str(tmp_path))

        assert dest == tmp_path / "target" / "release"
        cmd = mock_run.call_args.args[0]
        assert cmd[:3] == ["gh", "run", "download"]
        assert cmd[cmd.index("--name") + 1] == "release-9e8d7c6-x86_64-unknown-linux-gnu"
        assert os.access(dest / "databend-query", os.X_OK)

    @patch("benchsuite.staging.artifacts.run_command")
    def test_missing_artifact(self, mock_run, tmp_path):
        mock_run.side_effect = CommandError("no artifact matches")
        with pytest.raises(ArtifactNotFoundError):
            download_pr_artifact("9e8d7c6", workdir=str(tmp_path))


class TestVerifyBinaries:
    def test_all_present(self, tmp_path):
        for name in ("databend-query", "databend-meta"):
            (tmp_path / name).write_bytes(b"")
        assert [p.name for p in verify_binaries(tmp_path)] == ["databend-query", "databend-meta"]

    def test_missing(self, tmp_path):
        (tmp_path / "databend-query").write_bytes(b"")
        with pytest.raises(BinaryMissingError, match="databend-meta"):
            verify_binaries(tmp_path)


class TestStageArtifact:
    def test_release_path(self, release_params, tmp_path):
        with patch.object(artifacts, "download_release") as dl, patch.object(
            artifacts, "extract_binaries"
        ) as ex, patch.object(artifacts, "download_pr_artifact") as pr, patch.object(
            artifacts, "verify_binaries"
        ) as verify:
            dl.return_value = tmp_path / "distro" / "a.tar.gz"

            dest = stage_artifact(release_params, workdir=str(tmp_path))

        dl.assert_called_once()
        assert dl.call_args.args[0] == "v1.2.600-nightly"
        ex.assert_called_once_with(dl.return_value, dest)
        pr.assert_not_called()
        verify.assert_called_once_with(dest)

    def test_pr_path(self, pr_params, tmp_path):
        with patch.object(artifacts, "download_release") as dl, patch.object(
            artifacts, "download_pr_artifact"
        ) as pr, patch.object(artifacts, "verify_binaries"):
            stage_artifact(pr_params, workdir=str(tmp_path))

        dl.assert_not_called()
        pr.assert_called_once()
        assert pr.call_args.args[0] == "9e8d7c6"
