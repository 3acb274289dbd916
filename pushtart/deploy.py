"""
Deploy pipeline - turns a received git push into a running tart.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

A push goes through four steps, all under the tart's lock:

1. The bare repository's HEAD is checked out into the deployment directory
   (skipped when the transport already unpacked the tree and passes the
   commit in).
2. The commit hash and subject are recorded on the tart.
3. An optional ``tartconfig`` script at the deployment root runs with the
   tart's environment, its output streamed to the pusher.
4. A tart that was running is restarted on the new code. A stopped tart
   stays stopped.

A failure in step 1 aborts the deploy with nothing recorded. A failing
``tartconfig`` is reported but does not prevent step 4.
"""

import logging
import os
import shlex
import subprocess
import sys
from pathlib import Path

from .auth import check_owner
from .errors import ExecutionFailed, InvalidArgument
from .models import Principal, TRUSTED, Tart
from .process import build_env
from .store import TartStore
from .supervisor import Supervisor

log = logging.getLogger("pushtart.deploy")

TARTCONFIG_FILE = "tartconfig"

POST_RECEIVE_HOOK = """#!/bin/sh
# Installed by pushtart; rewritten on every push preparation.
exec {python} -m pushtart --config {config} deploy --tart {push_url}
"""


def validate_push_url(push_url: str):
    if not push_url.startswith("/"):
        raise InvalidArgument("pushURLs must start with a '/' character.")
    parts = push_url.strip("/").split("/")
    if any(part in ("", ".", "..") for part in parts):
        raise InvalidArgument(f"Invalid pushURL: {push_url}")


class DeployPipeline:
    def __init__(self, store: TartStore, supervisor: Supervisor, repo_dir: Path, config_path: Path = None):
        self.store = store
        self.supervisor = supervisor
        self.repo_dir = Path(repo_dir)
        # Without a config file there is nothing for a hook to load, so no hook
        self.config_path = Path(config_path).resolve() if config_path is not None else None

    def repo_path_for(self, push_url: str) -> Path:
        return self.repo_dir / (push_url.strip("/") + ".git")

    def _git(self, args: list, git_dir: Path, work_tree: Path = None) -> str:
        cmd = ["git", f"--git-dir={git_dir}"]
        if work_tree is not None:
            cmd.append(f"--work-tree={work_tree}")
        try:
            result = subprocess.run(
                cmd + args,
                cwd=work_tree,
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise ExecutionFailed(f"git {args[0]} failed: {e.stderr.strip()}") from e
        except OSError as e:
            raise ExecutionFailed(f"git {args[0]} failed: {e}") from e
        return result.stdout.strip()

    def pre_git_receive(self, push_url: str, principal: Principal = TRUSTED):
        """Prepare the bare repository, its post-receive hook and the deployment directory.

        The hook runs ``pushtart deploy`` for this tart once git has accepted a
        push, so the transport only needs to hand the push to git.
        """
        validate_push_url(push_url)
        if self.store.exists(push_url):
            check_owner(principal, self.store.get(push_url))

        repo_path = self.repo_path_for(push_url)
        if not repo_path.exists():
            try:
                repo_path.parent.mkdir(parents=True, exist_ok=True)
                subprocess.run(
                    ["git", "init", "--bare", "--quiet", str(repo_path)],
                    capture_output=True,
                    text=True,
                    check=True,
                )
            except subprocess.CalledProcessError as e:
                raise ExecutionFailed(f"git init failed: {e.stderr.strip()}") from e
            except OSError as e:
                raise ExecutionFailed(f"git init failed: {e}") from e
            log.info("[%s] Created repository %s", push_url, repo_path)

        try:
            self.install_hook(push_url)
            self.supervisor.deployment_dir_for(push_url).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ExecutionFailed(f"Failed to prepare {push_url}: {e}") from e

    def hook_path_for(self, push_url: str) -> Path:
        return self.repo_path_for(push_url) / "hooks" / "post-receive"

    def install_hook(self, push_url: str):
        if self.config_path is None:
            return
        hook = self.hook_path_for(push_url)
        hook.parent.mkdir(parents=True, exist_ok=True)
        hook.write_text(POST_RECEIVE_HOOK.format(
            python=shlex.quote(sys.executable),
            config=shlex.quote(str(self.config_path)),
            push_url=shlex.quote(push_url),
        ))
        os.chmod(hook, 0o755)

    def checkout(self, push_url: str) -> tuple:
        """Materialize the pushed HEAD into the deployment directory.

        Returns (commit hash, commit subject).
        """
        repo_path = self.repo_path_for(push_url)
        if not repo_path.exists():
            raise ExecutionFailed(f"No repository for {push_url}")
        work_tree = self.supervisor.deployment_dir_for(push_url)
        work_tree.mkdir(parents=True, exist_ok=True)

        commit_hash = self._git(["rev-parse", "HEAD"], repo_path)
        message = self._git(["log", "-1", "--format=%s", "HEAD"], repo_path)
        self._git(["checkout", "-f"], repo_path, work_tree=work_tree)
        return commit_hash, message

    def deploy(self, push_url: str, out, commit: tuple = None) -> bool:
        """Run the full pipeline for a received push. Returns False if tartconfig failed."""
        with self.supervisor.locks.hold(push_url):
            tart = self.store.get(push_url)
            if commit is None:
                commit = self.checkout(push_url)

            tart.last_hash, tart.last_git_message = commit
            self.store.save(push_url, tart)
            log.info("[%s] Deployed %s: %s", push_url, tart.last_hash, tart.last_git_message)
            out.write(f"Deployed {tart.last_hash[:12]}: {tart.last_git_message}\n")

            script_ok = self.run_tartconfig(tart, out)

            if tart.is_running:
                self.supervisor.stop(push_url)
                pid = self.supervisor.start(push_url)
                out.write(f"Restarted {push_url} (PID {pid})\n")
            return script_ok

    def digest(self, push_url: str, out) -> bool:
        """Re-run the tart's tartconfig without a new push."""
        with self.supervisor.locks.hold(push_url):
            return self.run_tartconfig(self.store.get(push_url), out)

    def run_tartconfig(self, tart: Tart, out) -> bool:
        work_dir = self.supervisor.deployment_dir_for(tart.push_url)
        script_path = work_dir / TARTCONFIG_FILE
        if not script_path.exists():
            return True

        out.write(f"Running {TARTCONFIG_FILE} for {tart.push_url}\n")
        try:
            process = subprocess.Popen(
                ["sh", TARTCONFIG_FILE],
                cwd=work_dir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=build_env(tart.env),
                text=True,
            )
        except OSError as e:
            log.warning("[%s] Failed to run %s: %s", tart.push_url, TARTCONFIG_FILE, e)
            out.write(f"Err: could not run {TARTCONFIG_FILE}: {e}\n")
            return False

        with process.stdout:
            for line in process.stdout:
                out.write(line)
        code = process.wait()
        if code != 0:
            log.warning("[%s] %s exited with code %d", tart.push_url, TARTCONFIG_FILE, code)
            out.write(f"Err: {TARTCONFIG_FILE} exited with code {code}\n")
            return False
        return True
