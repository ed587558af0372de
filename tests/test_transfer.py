"""Tests for paste and delete orchestration."""

import os

import pytest

from conftest import snapshot
from twinsftp.fileops import FileOperationError, FileStatus
from twinsftp.messages import DELETE_PROMPT, OVERWRITE_PROMPT, ErrorCode, get_error
from twinsftp.transfer import CopyIntent, DeleteJob, JobKind, PasteJob, TransferEngine


class TestContext:
    def test_remote_attached(self, engine, remote_root):
        assert engine.remote_cwd.path == str(remote_root)
        assert engine.backend(True) is engine.remote
        assert engine.local.cancel_event is engine.cancel_event
        assert engine.remote.cancel_event is engine.cancel_event

    def test_not_connected(self, local):
        engine = TransferEngine(local)
        with pytest.raises(FileOperationError):
            engine.backend(True)
        assert engine.cwd(True).path == "/"

    def test_detach_drops_remote_clipboard(self, engine, remote_root):
        engine.copy("x", str(remote_root), remote=True)
        engine.detach_remote()
        assert engine.clipboard == ()
        assert engine.remote is None

    def test_cancel_flag(self, engine):
        engine.request_cancel()
        assert engine.cancel_requested
        assert engine.remote.cancel_requested()
        engine.reset_cancel()
        assert not engine.cancel_requested

    def test_list_local_directory(self, engine, local_root, tree):
        engine.local_cwd.path = str(local_root)
        entries, message = engine.list_directory(False)
        assert [e.name for e in entries] == ["A"]
        assert message == ""

    def test_list_missing_remote_directory(self, engine, remote_root):
        engine.remote_cwd.path = str(remote_root / "gone")
        entries, message = engine.list_directory(True)
        assert entries == []
        assert message.startswith(get_error(ErrorCode.LIST_REMOTE_FAILED))

    def test_list_missing_local_directory(self, engine, local_root):
        engine.local_cwd.path = str(local_root / "gone")
        entries, message = engine.list_directory(False)
        assert entries == []
        assert message.startswith(get_error(ErrorCode.LIST_LOCAL_FAILED))

    def test_list_remote_not_connected(self, local):
        engine = TransferEngine(local)
        entries, message = engine.list_directory(True)
        assert entries == []
        assert message.startswith(get_error(ErrorCode.LIST_REMOTE_FAILED))


class TestClipboard:
    def test_copy_replaces_previous_selection(self, engine, local_root):
        engine.copy(["a", "b"], str(local_root), remote=False)
        intents = engine.copy("c", str(local_root), remote=False, cut=True)
        assert intents == (CopyIntent("c", str(local_root / "c"), False, True),)
        assert engine.clipboard == intents

    def test_intent_directory(self):
        assert CopyIntent("f", "/srv/data/f", remote=True).directory == "/srv/data"
        assert CopyIntent("etc", "/etc", remote=True).directory == "/"

    def test_paste_job_needs_clipboard(self, engine, local_root):
        with pytest.raises(ValueError):
            engine.paste_job(str(local_root), False)
        engine.copy("a", str(local_root), remote=False)
        job = engine.paste_job(str(local_root / "dst"), True, overwrite=True)
        assert job.kind is JobKind.PASTE
        assert job.directory == str(local_root / "dst")
        assert job.remote and job.overwrite

    def test_clear(self, engine, local_root):
        engine.copy("a", str(local_root), remote=False)
        engine.clear_clipboard()
        assert engine.clipboard == ()


class TestPaste:
    def test_local_to_local(self, engine, local_root, tree):
        (local_root / "B").mkdir()
        sources = engine.copy("A", str(local_root), remote=False)
        assert engine.paste(sources, str(local_root / "B"), False).ok
        assert snapshot(local_root / "B" / "A") == snapshot(tree)

    def test_local_to_remote(self, engine, local_root, remote_root, tree):
        sources = engine.copy(["A"], str(local_root), remote=False)
        assert engine.paste(sources, str(remote_root), True).ok
        assert snapshot(remote_root / "A") == snapshot(tree)

    def test_remote_to_local(self, engine, local_root, remote_root):
        (remote_root / "report.txt").write_bytes(b"quarterly")
        sources = engine.copy("report.txt", str(remote_root), remote=True)
        assert engine.paste(sources, str(local_root), False).ok
        assert (local_root / "report.txt").read_bytes() == b"quarterly"

    def test_remote_to_remote_runs_on_server(self, engine, remote_root, fake_session):
        (remote_root / "src").mkdir()
        (remote_root / "dst").mkdir()
        (remote_root / "src" / "f").write_bytes(b"server side")
        sources = engine.copy("f", str(remote_root / "src"), remote=True)
        assert engine.paste(sources, str(remote_root / "dst"), True).ok
        assert (remote_root / "dst" / "f").read_bytes() == b"server side"
        assert fake_session.commands
        assert fake_session.sftp.writes == []

    def test_conflict_copies_nothing(self, engine, local_root, remote_root):
        for name in ("one", "two", "three"):
            (local_root / name).write_text(name)
        (remote_root / "two").write_text("remote two")
        sources = engine.copy(["one", "two", "three"], str(local_root), remote=False)

        outcome = engine.paste(sources, str(remote_root), True)
        assert outcome.status is FileStatus.ALREADY_EXISTS
        assert sorted(os.listdir(remote_root)) == ["two"]

        assert engine.paste(sources, str(remote_root), True, overwrite=True).ok
        assert (remote_root / "two").read_text() == "two"
        assert sorted(os.listdir(remote_root)) == ["one", "three", "two"]

    def test_directory_conflict(self, engine, local_root, remote_root, tree):
        (remote_root / "A").mkdir()
        sources = engine.copy("A", str(local_root), remote=False)
        assert engine.paste(sources, str(remote_root), True).status is FileStatus.DIR_ALREADY_EXISTS

    def test_stops_before_next_item(self, engine, local_root, remote_root):
        (local_root / "a").write_text("a")
        sources = engine.copy("a", str(local_root), remote=False)
        engine.request_cancel()
        outcome = engine.paste(sources, str(remote_root), True)
        assert outcome.status is FileStatus.STOP_REQUESTED
        assert outcome.message == get_error(ErrorCode.STOP_REQUESTED)
        assert not (remote_root / "a").exists()

    def test_first_failure_stops(self, engine, local_root, remote_root):
        (local_root / "b").write_text("b")
        sources = (
            CopyIntent("ghost", str(local_root / "ghost"), False),
            CopyIntent("b", str(local_root / "b"), False),
        )
        outcome = engine.paste(sources, str(remote_root), True)
        assert outcome.status is FileStatus.READ_FAILED
        assert outcome.message.startswith(get_error(ErrorCode.FILE_COPY_FAILED))
        assert not (remote_root / "b").exists()

    def test_remote_not_connected(self, local, local_root):
        engine = TransferEngine(local)
        (local_root / "a").write_text("a")
        sources = engine.copy("a", str(local_root), remote=False)
        outcome = engine.paste(sources, "/tmp", True)
        assert outcome.status is FileStatus.COPY_FAILED
        assert outcome.message.startswith(get_error(ErrorCode.FILE_COPY_FAILED))


class TestCut:
    def test_local_cut_moves(self, engine, local_root, remote_root, tree):
        expected = snapshot(tree)
        sources = engine.copy("A", str(local_root), remote=False, cut=True)
        assert engine.paste(sources, str(remote_root), True).ok
        assert snapshot(remote_root / "A") == expected
        assert not tree.exists()

    def test_remote_cut_uses_mv(self, engine, remote_root, fake_session):
        (remote_root / "a").mkdir()
        (remote_root / "b").mkdir()
        (remote_root / "a" / "f").write_text("moved")
        sources = engine.copy("f", str(remote_root / "a"), remote=True, cut=True)
        assert engine.paste(sources, str(remote_root / "b"), True).ok
        assert fake_session.commands[-1].startswith("mv ")
        assert not (remote_root / "a" / "f").exists()
        assert (remote_root / "b" / "f").read_text() == "moved"

    def test_cut_onto_itself_keeps_source(self, engine, local_root):
        (local_root / "f").write_text("stay")
        sources = engine.copy("f", str(local_root), remote=False, cut=True)
        assert engine.paste(sources, str(local_root), False, overwrite=True).ok
        assert (local_root / "f").read_text() == "stay"


class TestDelete:
    def test_prompt_changes_nothing(self, engine, tree):
        outcome = engine.delete(str(tree), remote=False)
        assert outcome.status is None
        assert outcome.message == DELETE_PROMPT + str(tree)
        assert tree.exists()

    def test_finalize(self, engine, tree):
        assert engine.delete(str(tree), remote=False, finalize=True).ok
        assert not tree.exists()

    def test_remote_finalize(self, engine, remote_root):
        (remote_root / "d" / "e").mkdir(parents=True)
        assert engine.delete(str(remote_root / "d"), remote=True, finalize=True).ok
        assert not (remote_root / "d").exists()

    def test_missing_target(self, engine, local_root):
        outcome = engine.delete(str(local_root / "ghost"), remote=False, finalize=True)
        assert outcome.status is FileStatus.REMOVE_FAILED
        assert outcome.message.startswith(get_error(ErrorCode.DELETE_FAILED))


class TestExecute:
    def test_paste_result_reports_target(self, engine, local_root, remote_root):
        (local_root / "x").write_text("x")
        (remote_root / "x").write_text("old")
        engine.copy("x", str(local_root), remote=False)
        result = engine.execute(engine.paste_job(str(remote_root), True))
        assert result.kind is JobKind.PASTE
        assert result.conflict
        assert result.directory == str(remote_root)
        assert result.remote
        assert result.prompt == OVERWRITE_PROMPT + str(remote_root)

    def test_delete_result_reports_parent(self, engine, tree, local_root):
        result = engine.execute(engine.delete_job(str(tree), False))
        assert result.ok
        assert result.kind is JobKind.DELETE
        assert result.directory == str(local_root)
        assert result.prompt is None

    def test_job_directories(self):
        assert DeleteJob("/srv/data/", remote=True).directory == "/srv"
        assert PasteJob((), "/srv", True).directory == "/srv"

    def test_unknown_job(self, engine):
        with pytest.raises(TypeError):
            engine.execute(object())
