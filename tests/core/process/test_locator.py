from __future__ import annotations

from wtdev.core.process.locator import ProcessLocator
from helpers.fakes import ScriptedInspector


class TestProcessLocator:
    def test_first_inspector_with_answer_wins(self):
        psutil_like = ScriptedInspector([[41, 42]], name="psutil")
        ss = ScriptedInspector([[99]], name="ss")
        assert ProcessLocator([psutil_like, ss]).find_listening_pids(5003) == {41, 42}
        assert ss.calls == 0

    def test_unavailable_and_hidden_owners_fall_through(self):
        unavailable = ScriptedInspector([None], name="psutil")
        hidden = ScriptedInspector([[None]], name="ss")
        lsof = ScriptedInspector([[7]], name="lsof")
        assert ProcessLocator([unavailable, hidden, lsof]).find_listening_pids(5003) == {7}

    def test_empty_answer_is_conclusive(self):
        first = ScriptedInspector([[]], name="psutil")
        second = ScriptedInspector([[7]], name="ss")
        assert ProcessLocator([first, second]).find_listening_pids(5003) == set()
        assert second.calls == 0

    def test_nothing_available(self):
        assert ProcessLocator([ScriptedInspector([None])]).find_listening_pids(5003) == set()

    def test_everywhere_is_union(self):
        inspectors = [
            ScriptedInspector([[1]], name="a"),
            ScriptedInspector([None], name="b"),
            ScriptedInspector([[2, 1]], name="c"),
        ]
        assert ProcessLocator(inspectors).find_listening_pids_everywhere(5003) == {1, 2}
