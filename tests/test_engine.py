"""Tests for the batch transfer engine."""

from __future__ import annotations

import logging
import os

import pytest

from xfer_tool.engine import TransferEngine, resolve_local_destination
from xfer_tool.errors import InvalidLocalPathError, ListingError, SessionNotOpenError
from xfer_tool.models import Direction, TransferOutcome, TransferRequest


def _download(source, destination, **kwargs) -> TransferRequest:
    return TransferRequest(direction=Direction.DOWNLOAD, source=source, destination=destination, **kwargs)


def _upload(source, destination, **kwargs) -> TransferRequest:
    return TransferRequest(direction=Direction.UPLOAD, source=source, destination=destination, **kwargs)


class TestResolveLocalDestination:
    def test_existing_directory_gets_separator(self, tmp_path) -> None:
        assert resolve_local_destination(str(tmp_path)) == str(tmp_path) + os.sep

    def test_new_file_path_kept(self, tmp_path) -> None:
        target = tmp_path / "new" / "file.bin"
        assert resolve_local_destination(str(target)) == str(target)

    def test_relative_resolved_against_cwd(self, tmp_path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        assert resolve_local_destination("out.txt") == str(tmp_path / "out.txt")

    @pytest.mark.parametrize("value", ["http://example.com/x", "env:PATH", "s3://bucket/key", ""])
    def test_non_filesystem_rejected(self, value) -> None:
        with pytest.raises(InvalidLocalPathError):
            resolve_local_destination(value)

    def test_path_through_a_file_rejected(self, tmp_path) -> None:
        blocker = tmp_path / "plain.txt"
        blocker.write_text("x")
        with pytest.raises(InvalidLocalPathError):
            resolve_local_destination(str(blocker / "child.txt"))


class TestDownload:
    def test_wildcard_into_existing_directory(self, session, remote, tmp_path) -> None:
        remote.add_file("/logs/app.log", b"one")
        remote.add_file("/logs/db.log", b"two")
        remote.add_file("/logs/readme.txt", b"skip")
        out = tmp_path / "out"
        out.mkdir()

        outcomes = TransferEngine().download(session, _download("/logs/*.log", str(out)))

        assert sorted(o.file_name for o in outcomes) == ["app.log", "db.log"]
        assert all(o.success for o in outcomes)
        assert (out / "app.log").read_bytes() == b"one"
        assert (out / "db.log").read_bytes() == b"two"
        assert out.is_dir()

    def test_middle_failure_does_not_abort(self, session, remote, tmp_path) -> None:
        for name in ("f1.bin", "f2.bin", "f3.bin"):
            remote.add_file(f"/batch/{name}", name.encode())
        remote.fail_get.add("/batch/f2.bin")

        outcomes = TransferEngine().download(session, _download("/batch/*", str(tmp_path)))

        assert [(o.file_name, o.success) for o in outcomes] == [
            ("f1.bin", True), ("f2.bin", False), ("f3.bin", True),
        ]
        assert outcomes[1].error == "simulated transfer failure"
        assert (tmp_path / "f3.bin").exists()

    def test_success_iff_no_error(self, session, remote, tmp_path) -> None:
        remote.add_file("/d/a", b"a")
        remote.add_file("/d/b", b"b")
        remote.fail_get.add("/d/a")
        for outcome in TransferEngine().download(session, _download("/d/*", str(tmp_path))):
            assert outcome.success == (outcome.error is None)

    def test_filters_see_literal_source_only(self, session, remote, tmp_path) -> None:
        remote.add_file("/logs/app.log")
        engine = TransferEngine()
        # '*.log' does not match the literal leaf '*', so nothing is attempted
        assert engine.download(session, _download("/logs/*", str(tmp_path), include=["*.log"])) == []
        assert engine.download(session, _download("/logs/*.log", str(tmp_path), exclude=["*.log"])) == []
        assert not (tmp_path / "app.log").exists()

    def test_single_file_to_new_name(self, session, remote, tmp_path) -> None:
        remote.add_file("/r/report.csv", b"csv")
        target = tmp_path / "copy.csv"
        outcomes = TransferEngine().download(session, _download("/r/report.csv", str(target)))
        assert outcomes == [TransferOutcome("report.csv", str(target), True)]
        assert target.read_bytes() == b"csv"

    def test_remove_source(self, session, remote, tmp_path) -> None:
        remote.add_file("/r/a.txt")
        TransferEngine().download(session, _download("/r/a.txt", str(tmp_path), remove_source=True))
        assert "/r/a.txt" not in remote.files

    def test_directory_download_recurses(self, session, remote, tmp_path) -> None:
        remote.add_file("/tree/x.txt", b"x")
        remote.add_file("/tree/sub/y.txt", b"y")
        outcomes = TransferEngine().download(session, _download("/tree", str(tmp_path)))
        assert len(outcomes) == 2
        assert (tmp_path / "tree" / "sub" / "y.txt").read_bytes() == b"y"

    def test_missing_remote_is_a_failed_outcome(self, session, tmp_path) -> None:
        outcomes = TransferEngine().download(session, _download("/none.txt", str(tmp_path)))
        assert len(outcomes) == 1
        assert not outcomes[0].success

    def test_veto_skips_without_outcome(self, session, remote, tmp_path) -> None:
        remote.add_file("/r/a.txt")
        asked = []

        def confirm(action, target):
            asked.append(action)
            return False

        assert TransferEngine(confirm=confirm).download(session, _download("/r/a.txt", str(tmp_path))) == []
        assert asked == ["Download /r/a.txt"]
        assert not (tmp_path / "a.txt").exists()

    def test_invalid_local_destination(self, session) -> None:
        with pytest.raises(InvalidLocalPathError):
            TransferEngine().download(session, _download("/r/a.txt", "http://example.com/"))

    def test_closed_session_refused(self, session, tmp_path) -> None:
        session.close()
        with pytest.raises(SessionNotOpenError):
            TransferEngine().download(session, _download("/r/a.txt", str(tmp_path)))

    def test_progress_events_delivered(self, session, remote, tmp_path) -> None:
        events = []
        remote.on_progress(events.append)
        remote.add_file("/r/a.txt", b"12345")
        TransferEngine().download(session, _download("/r/a.txt", str(tmp_path)))
        assert events[-1].file_name == "a.txt"
        assert events[-1].fraction == 1.0

    def test_listing_failure_mid_tree_aborts_with_finished_outcomes(self, session, remote, tmp_path) -> None:
        remote.add_file("/tree/aa/x.txt", b"x")
        remote.add_file("/tree/sub/y.txt", b"y")
        remote.fail_list.add("/tree/sub")

        with pytest.raises(ListingError) as info:
            TransferEngine().download(session, _download("/tree", str(tmp_path)))

        assert [(o.file_name, o.success) for o in info.value.outcomes] == [("x.txt", True)]

    def test_transport_exception_becomes_listing_error(self, session, remote, tmp_path, monkeypatch) -> None:
        def broken(*args, **kwargs):
            raise RuntimeError("channel closed")

        monkeypatch.setattr(remote, "get_files", broken)
        with pytest.raises(ListingError) as info:
            TransferEngine().download(session, _download("/r/*.txt", str(tmp_path)))
        assert isinstance(info.value.__cause__, RuntimeError)
        assert info.value.outcomes == []


class TestUpload:
    def test_glob_with_filters_applied_after_expansion(self, session, remote, tmp_path) -> None:
        for name in ("a.txt", "b.txt", "c.bin"):
            (tmp_path / name).write_bytes(name.encode())
        remote.add_dir("/in")

        outcomes = TransferEngine().upload(
            session, _upload(str(tmp_path / "*"), "/in/", include=["*.txt"], exclude=["b*"]),
        )

        assert [(o.file_name, o.destination, o.success) for o in outcomes] == [("a.txt", "/in/a.txt", True)]
        assert remote.files["/in/a.txt"] == b"a.txt"

    def test_destination_without_separator_is_target_name(self, session, remote, tmp_path) -> None:
        (tmp_path / "a.txt").write_bytes(b"a")
        remote.add_dir("/in")
        outcomes = TransferEngine().upload(session, _upload(str(tmp_path / "a.txt"), "/in/renamed.txt"))
        assert outcomes[0].destination == "/in/renamed.txt"
        assert "/in/renamed.txt" in remote.files

    def test_per_file_failure_reported(self, session, remote, tmp_path) -> None:
        for name in ("a.txt", "b.txt", "c.txt"):
            (tmp_path / name).write_bytes(b"x")
        remote.add_dir("/in")
        remote.fail_put.add("/in/b.txt")

        outcomes = TransferEngine().upload(session, _upload(str(tmp_path / "*.txt"), "/in/"))

        assert [o.success for o in outcomes] == [True, False, True]
        assert outcomes[1].error

    def test_directory_upload_creates_remote_tree(self, session, remote, tmp_path) -> None:
        src = tmp_path / "site"
        (src / "css").mkdir(parents=True)
        (src / "index.html").write_text("<html/>")
        (src / "css" / "main.css").write_text("body{}")

        outcomes = TransferEngine().upload(session, _upload(str(src), "/www/"))

        assert len(outcomes) == 2
        assert remote.files["/www/site/css/main.css"] == b"body{}"

    def test_remove_source(self, session, remote, tmp_path) -> None:
        local = tmp_path / "a.txt"
        local.write_bytes(b"a")
        TransferEngine().upload(session, _upload(str(local), "/", remove_source=True))
        assert not local.exists()
        assert "/a.txt" in remote.files

    def test_no_local_match(self, session, tmp_path) -> None:
        with pytest.raises(InvalidLocalPathError):
            TransferEngine().upload(session, _upload(str(tmp_path / "*.nothing"), "/"))

    def test_veto_per_file(self, session, remote, tmp_path) -> None:
        (tmp_path / "keep.txt").write_bytes(b"k")
        (tmp_path / "skip.txt").write_bytes(b"s")
        engine = TransferEngine(confirm=lambda action, target: "keep" in action)
        outcomes = engine.upload(session, _upload(str(tmp_path / "*.txt"), "/"))
        assert [o.file_name for o in outcomes] == ["keep.txt"]
        assert "/skip.txt" not in remote.files

    def test_bracketed_file_name_sent_as_is(self, session, remote, tmp_path) -> None:
        (tmp_path / "a[1].txt").write_bytes(b"bracket")
        (tmp_path / "a1.txt").write_bytes(b"plain")

        outcomes = TransferEngine().upload(session, _upload(str(tmp_path / "a[1].txt"), "/"))

        assert [(o.file_name, o.success) for o in outcomes] == [("a[1].txt", True)]
        assert remote.files == {"/a[1].txt": b"bracket"}

    def test_many_files_to_one_name_warns(self, session, remote, tmp_path, caplog) -> None:
        for name in ("a.txt", "b.txt"):
            (tmp_path / name).write_bytes(name.encode())
        remote.add_dir("/in")

        with caplog.at_level(logging.WARNING, logger="xfer_tool"):
            TransferEngine().upload(session, _upload(str(tmp_path / "*.txt"), "/in/one.txt"))

        assert any("2 files all target /in/one.txt" in r.getMessage() for r in caplog.records)
        assert remote.files["/in/one.txt"] == b"b.txt"

    def test_remote_directory_failure_keeps_earlier_uploads(self, session, remote, tmp_path, monkeypatch) -> None:
        (tmp_path / "a.txt").write_bytes(b"a")
        (tmp_path / "z_site").mkdir()
        (tmp_path / "z_site" / "index.html").write_text("x")

        def refuse(path):
            raise IOError("read-only filesystem")

        monkeypatch.setattr(remote, "_mkdir", refuse)
        with pytest.raises(ListingError) as info:
            TransferEngine().upload(session, _upload(str(tmp_path / "*"), "/"))
        assert [(o.file_name, o.success) for o in info.value.outcomes] == [("a.txt", True)]


class TestRequest:
    def test_binary_is_fixed(self) -> None:
        request = _download("/a", "/b")
        assert request.binary is True

    def test_outcome_invariant(self) -> None:
        with pytest.raises(ValueError):
            TransferOutcome("a", "/a", success=True, error="boom")
        with pytest.raises(ValueError):
            TransferOutcome("a", "/a", success=False)

    def test_direction_mismatch(self, session) -> None:
        with pytest.raises(ValueError):
            TransferEngine().download(session, _upload("/a", "/b"))
