"""Tests for pushtart.process."""

import os
import subprocess
import time

from pushtart.process import ProcessHandle, build_env, is_process_alive, sanitize_filename, terminate_pid

from conftest import wait_for


def test_sanitize_filename():
    assert sanitize_filename("/blog") == "blog"
    assert sanitize_filename("/team/my app") == "team_my_app"


def test_build_env_overlays_entries(monkeypatch):
    monkeypatch.setenv("KEEP_ME", "1")
    env = build_env(["PORT=8080", "URL=http://x/?a=b", "junk"])
    assert env["KEEP_ME"] == "1"
    assert env["PORT"] == "8080"
    assert env["URL"] == "http://x/?a=b"
    assert "junk" not in env


def test_is_process_alive_for_self_and_missing():
    assert is_process_alive(os.getpid())
    assert not is_process_alive(0)
    assert not is_process_alive(None)


def test_is_process_alive_false_for_reaped_child():
    child = subprocess.Popen(["true"])
    child.wait()
    assert not is_process_alive(child.pid)


def test_handle_spawn_and_terminate(tmp_path):
    handle = ProcessHandle.spawn(["sleep", "60"], cwd=tmp_path, env=build_env([]))
    assert handle.started_at is not None
    assert handle.is_alive()

    handle.terminate(2)

    assert not handle.is_alive()
    assert handle.returncode is not None


def test_handle_notices_exit(tmp_path):
    handle = ProcessHandle.spawn(["sh", "-c", "exit 3"], cwd=tmp_path, env=build_env([]))
    assert wait_for(lambda: not handle.is_alive())
    assert handle.returncode == 3


def test_handle_generation_mismatch_means_dead(tmp_path):
    handle = ProcessHandle.spawn(["sleep", "60"], cwd=tmp_path, env=build_env([]))
    try:
        handle.started_at -= 100
        assert not handle.is_alive()
    finally:
        handle.terminate(1)


def test_handle_escalates_to_kill(tmp_path):
    script = "trap '' TERM; while true; do sleep 0.1; done\n"
    handle = ProcessHandle.spawn(["sh", "-c", script], cwd=tmp_path, env=build_env([]))
    # Give the shell time to install its trap
    time.sleep(0.3)

    code = handle.terminate(0.5)

    assert code == -9
    assert not handle.is_alive()


def test_spawn_appends_output_to_log(tmp_path):
    log_file = tmp_path / "logs" / "app.log"
    log_file.parent.mkdir()
    log_file.write_text("earlier\n")
    handle = ProcessHandle.spawn(["sh", "-c", "echo hello; echo oops >&2"], cwd=tmp_path,
                                 env=build_env([]), log_file=log_file)
    handle.wait(5)
    assert log_file.read_text().splitlines() == ["earlier", "hello", "oops"]


def test_terminate_pid_for_foreign_process(tmp_path):
    child = subprocess.Popen(["sleep", "60"], start_new_session=True)
    try:
        terminate_pid(child.pid, 2)
        assert child.wait(5) is not None
    finally:
        if child.poll() is None:
            child.kill()
            child.wait()
