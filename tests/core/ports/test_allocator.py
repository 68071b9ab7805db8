"""Port assignment: determinism, uniqueness, stability and exhaustion."""
from __future__ import annotations

import hashlib
import logging
from pathlib import Path

import pytest

from wtdev.core.config import generate_port_pool
from wtdev.core.exceptions import PortExhaustedError, PortValidationError
from wtdev.core.ports.allocator import (
    PortAllocator,
    compute_hash_port,
    compute_secondary_hash_port,
    get_worktree_config,
    resolve_all_ports,
)
from helpers.fakes import StaticWorktrees

POOL5 = generate_port_pool(5001, 5)
POOL128 = generate_port_pool(5001, 128)


def _paths(n: int, prefix: str = "/home/dev/src/app-wt") -> list[str]:
    return [f"{prefix}{i}" for i in range(n)]


def _find_path(predicate, *, prefix: str = "/home/dev/src/wt-", exclude: tuple[str, ...] = ()) -> str:
    for i in range(10_000):
        candidate = f"{prefix}{i}"
        if candidate not in exclude and predicate(candidate):
            return candidate
    raise AssertionError("no candidate path satisfies predicate")


class TestHashFunctions:
    def test_primary_hash_is_md5_prefix_mod_pool(self):
        path = "/home/dev/src/app"
        expected = int(hashlib.md5(path.encode()).hexdigest()[:8], 16) % len(POOL5)
        assert compute_hash_port(path, POOL5) == POOL5[expected]

    def test_secondary_hash_seeds_attempt_into_path(self):
        path = "/home/dev/src/app"
        expected = int(hashlib.md5(f"{path}:3".encode()).hexdigest()[:8], 16) % len(POOL5)
        assert compute_secondary_hash_port(path, POOL5, 3) == POOL5[expected]

    def test_assignment_is_deterministic(self):
        worktrees = _paths(6)
        first = resolve_all_ports(worktrees, POOL128)
        second = resolve_all_ports(worktrees, POOL128)
        assert first == second
        for wt in worktrees:
            assert compute_hash_port(wt, POOL128) == compute_hash_port(wt, POOL128)

    def test_empty_pool_is_rejected(self):
        with pytest.raises(PortValidationError):
            compute_hash_port("/a", [])
        with pytest.raises(PortValidationError):
            resolve_all_ports(["/a"], [])

    def test_out_of_range_pool_entry_is_rejected(self):
        with pytest.raises(PortValidationError):
            resolve_all_ports(["/a"], [5001, 70000])
        with pytest.raises(PortValidationError):
            PortAllocator([0, 5001])


class TestBatchResolution:
    @pytest.mark.parametrize("n", [1, 2, 5, 8, 16])
    def test_distinct_ports_when_pool_is_exactly_large_enough(self, n):
        pool = generate_port_pool(6000, n)
        assignments = resolve_all_ports(_paths(n), pool)
        assert len(assignments) == n
        assert len(set(assignments.values())) == n
        assert set(assignments.values()) <= set(pool)

    def test_stable_when_worktree_is_appended(self):
        worktrees = _paths(20)
        for k in range(1, len(worktrees)):
            before = resolve_all_ports(worktrees[:k], POOL128)
            after = resolve_all_ports(worktrees[: k + 1], POOL128)
            for wt in worktrees[:k]:
                assert after[wt] == before[wt]

    def test_stable_when_middle_worktree_is_removed(self):
        a = _find_path(lambda p: True)
        b = _find_path(lambda p: compute_hash_port(p, POOL5) != compute_hash_port(a, POOL5), exclude=(a,))
        taken = {compute_hash_port(a, POOL5), compute_hash_port(b, POOL5)}
        c = _find_path(lambda p: compute_hash_port(p, POOL5) not in taken, exclude=(a, b))

        full = resolve_all_ports([a, b, c], POOL5)
        without_b = resolve_all_ports([a, c], POOL5)
        assert without_b[a] == full[a]
        assert without_b[c] == full[c]

    def test_removal_keeps_port_of_worktree_that_lost_a_collision_to_an_earlier_survivor(self):
        a = _find_path(lambda p: True)
        pa = compute_hash_port(a, POOL128)
        c = _find_path(lambda p: compute_hash_port(p, POOL128) == pa, exclude=(a,))
        pc_full = resolve_all_ports([a, c], POOL128)[c]
        b = _find_path(
            lambda p: compute_hash_port(p, POOL128) not in (pa, pc_full),
            exclude=(a, c),
        )

        full = resolve_all_ports([a, b, c], POOL128)
        without_b = resolve_all_ports([a, c], POOL128)
        assert full[c] != pa
        assert without_b[a] == full[a] == pa
        assert without_b[c] == full[c]

    def test_exhaustion_raises_actionable_error(self):
        pool = generate_port_pool(5001, 2)
        with pytest.raises(PortExhaustedError) as exc:
            resolve_all_ports(_paths(3), pool)
        err = exc.value
        assert err.worktree_count == 3
        assert err.port_count == 2
        message = str(err)
        assert "Port pool exhausted" in message
        assert '"maxPorts": 3' in message
        assert "PORT=3000" in message

    def test_pool_of_two_serves_two_worktrees(self):
        pool = generate_port_pool(5001, 2)
        assignments = resolve_all_ports(_paths(2), pool)
        assert sorted(assignments.values()) == [5001, 5002]

    def test_collision_at_first_port_resolved_in_creation_order(self):
        """Two worktrees whose primary candidate is 5001: the older one keeps it."""
        first = _find_path(lambda p: compute_hash_port(p, POOL5) == 5001)
        second = _find_path(lambda p: compute_hash_port(p, POOL5) == 5001, exclude=(first,))
        third = _find_path(lambda p: compute_hash_port(p, POOL5) != 5001, exclude=(first, second))

        assignments = resolve_all_ports([first, second, third], POOL5)

        assert assignments[first] == 5001
        assert assignments[second] != 5001
        assert assignments[second] in POOL5
        assert len({assignments[first], assignments[second], assignments[third]}) == 3

        # Creation order decides, not path order.
        swapped = resolve_all_ports([second, first, third], POOL5)
        assert swapped[second] == 5001
        assert swapped[first] != 5001


class TestReservedBasePolicy:
    def test_first_worktree_always_gets_first_port(self):
        for worktrees in (_paths(1), _paths(4), _paths(4, prefix="/srv/other-")):
            assignments = resolve_all_ports(worktrees, POOL5, policy="reserved-base")
            assert assignments[worktrees[0]] == POOL5[0]

    def test_no_other_worktree_receives_first_port(self):
        main = "/home/dev/src/main-checkout"
        # Would have hashed onto 5001 under the plain hash policy.
        contender = _find_path(lambda p: compute_hash_port(p, POOL5) == 5001)
        others = [contender] + _paths(3)

        assignments = resolve_all_ports([main] + others, POOL5, policy="reserved-base")
        assert assignments[main] == 5001
        for wt in others:
            assert assignments[wt] != 5001
        assert len(set(assignments.values())) == 5

    def test_reserved_pool_exhaustion(self):
        with pytest.raises(PortExhaustedError):
            resolve_all_ports(_paths(2), [5001], policy="reserved-base")
        assert resolve_all_ports(_paths(1), [5001], policy="reserved-base") == {_paths(1)[0]: 5001}


class TestPortAllocator:
    def _allocator(self, worktrees, env=None, ports=POOL5, policy="hash"):
        return PortAllocator(
            ports,
            policy=policy,
            list_worktrees_fn=StaticWorktrees(worktrees),
            environ=env or {},
        )

    def test_port_override_bypasses_hashing(self, tmp_path: Path):
        lister = StaticWorktrees([str(tmp_path)])
        alloc = PortAllocator(POOL5, list_worktrees_fn=lister, environ={"PORT": "3000"})
        assert alloc.assign(tmp_path) == 3000
        assert lister.calls == []

    @pytest.mark.parametrize("raw", ["abc", "0", "70000", "-1"])
    def test_invalid_override_warns_and_falls_back(self, tmp_path: Path, caplog, raw):
        alloc = self._allocator([], env={"PORT": raw})
        with caplog.at_level(logging.WARNING, logger="wtdev"):
            assert alloc.assign(tmp_path) == POOL5[0]
        assert "Invalid PORT env var" in caplog.text

    def test_not_a_repository_uses_first_port(self, tmp_path: Path):
        assert self._allocator([]).assign(tmp_path) == POOL5[0]

    def test_path_outside_every_worktree_uses_first_port(self, tmp_path: Path):
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        wt = tmp_path / "repo"
        wt.mkdir()
        assert self._allocator([str(wt)]).assign(elsewhere) == POOL5[0]

    def test_subdirectory_maps_to_its_worktree(self, tmp_path: Path):
        main = tmp_path / "repo"
        linked = tmp_path / "repo-feature"
        (linked / "apps" / "web").mkdir(parents=True)
        main.mkdir()
        worktrees = [str(main.resolve()), str(linked.resolve())]
        expected = resolve_all_ports(worktrees, POOL128)[worktrees[1]]

        alloc = self._allocator(worktrees, ports=POOL128)
        assert alloc.assign(linked / "apps" / "web") == expected

    def test_reserved_policy_through_allocator(self, tmp_path: Path):
        main = tmp_path / "repo"
        main.mkdir()
        alloc = self._allocator([str(main.resolve())], policy="reserved-base")
        assert alloc.assign(main) == POOL5[0]


class TestWorktreeConfig:
    def test_http_by_default(self, make_config):
        config = make_config(ports=POOL5)
        wt = get_worktree_config(
            config,
            allocator=PortAllocator(POOL5, list_worktrees_fn=StaticWorktrees([]), environ={}),
            environ={},
        )
        assert wt.port == 5001
        assert wt.protocol == "http"
        assert wt.base_url == "http://localhost:5001"
        assert wt.inngest_port == 8288
        assert wt.inngest_url == "http://localhost:8288"

    def test_https_toggle_changes_scheme_only(self, make_config):
        config = make_config(ports=POOL5)
        env = {"USE_HTTPS_LOCALHOST": "true"}
        wt = get_worktree_config(
            config,
            allocator=PortAllocator(POOL5, list_worktrees_fn=StaticWorktrees([]), environ=env),
            environ=env,
        )
        assert wt.port == 5001
        assert wt.base_url == "https://localhost:5001"
        assert wt.inngest_url == "http://localhost:8288"
