from __future__ import annotations

import os
import signal
import sys
import threading
import time
from pathlib import Path

import psutil
import pytest

from wtdev.core.process import runner as runner_mod
from wtdev.core.process.runner import run_foreground, tail_command


class TestTailCommand:
    def test_posix(self, monkeypatch):
        monkeypatch.setattr(runner_mod.sys, "platform", "linux")
        assert tail_command(Path("/p/inngest.log"), 50) == ["tail", "-f", "-n", "50", "/p/inngest.log"]

    def test_windows(self, monkeypatch):
        monkeypatch.setattr(runner_mod.sys, "platform", "win32")
        argv = tail_command(Path("C:/p/dev-server.log"), 20)
        assert argv[0] == "powershell"
        assert "-Tail 20 -Wait" in argv[-1]


@pytest.mark.slow
class TestRunForeground:
    def test_exit_code_is_returned(self):
        assert run_foreground([sys.executable, "-c", "import sys; sys.exit(3)"]) == 3

    def test_env_and_cwd_are_passed(self, tmp_path):
        code = "import os, sys; sys.exit(0 if os.environ['DEV_PORT'] == '5003' and os.getcwd() == sys.argv[1] else 1)"
        env = {"DEV_PORT": "5003", "PATH": ""}
        cwd = tmp_path.resolve()
        assert run_foreground([sys.executable, "-c", code, str(cwd)], cwd=cwd, env=env) == 0

    def test_signal_handlers_restored(self):
        before = signal.getsignal(signal.SIGINT)
        run_foreground([sys.executable, "-c", "pass"])
        assert signal.getsignal(signal.SIGINT) is before

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signal delivery")
    def test_repeated_interrupt_still_kills_stubborn_child(self, tmp_path):
        ready = tmp_path / "child.pid"
        code = (
            "import os, signal, sys, time\n"
            "signal.signal(signal.SIGINT, signal.SIG_IGN)\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "open(sys.argv[1], 'w').write(str(os.getpid()))\n"
            "time.sleep(60)\n"
        )

        def interrupt_twice():
            deadline = time.monotonic() + 10
            while not ready.exists() or not ready.read_text():
                if time.monotonic() > deadline:
                    return
                time.sleep(0.05)
            os.kill(os.getpid(), signal.SIGINT)
            time.sleep(0.3)
            os.kill(os.getpid(), signal.SIGINT)

        sender = threading.Thread(target=interrupt_twice)
        sender.start()
        try:
            exit_code = run_foreground([sys.executable, "-c", code, str(ready)], grace_seconds=1.5)
        finally:
            sender.join()

        assert exit_code == 0
        assert not psutil.pid_exists(int(ready.read_text()))
