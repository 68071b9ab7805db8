from __future__ import annotations

from wtdev.core.ports.allocator import PortAllocator
from wtdev.core.ports.cache import PORT_FILE_NAME, PortCache, available_port, port_from_file
from helpers.fakes import StaticWorktrees


def _allocator(config, env=None):
    return PortAllocator.from_config(
        config.dev_server,
        list_worktrees_fn=StaticWorktrees([]),
        environ=env or {},
    )


class TestPortCache:
    def test_missing_file_reads_none(self, project_root):
        assert PortCache(project_root).read() is None

    def test_roundtrip(self, project_root):
        cache = PortCache(project_root)
        cache.write(5004)
        assert (project_root / PORT_FILE_NAME).read_text(encoding="utf-8") == "5004"
        assert cache.read() == 5004

    def test_garbage_reads_none(self, project_root):
        (project_root / PORT_FILE_NAME).write_text("not-a-port\n", encoding="utf-8")
        assert PortCache(project_root).read() is None
        (project_root / PORT_FILE_NAME).write_text("99999", encoding="utf-8")
        assert PortCache(project_root).read() is None


class TestAvailablePort:
    def test_computed_port_is_cached(self, make_config):
        config = make_config()
        port = available_port(config, allocator=_allocator(config))
        assert port == 5001
        assert PortCache(config.project_root).read() == 5001

    def test_matching_cache_is_kept(self, make_config):
        config = make_config()
        PortCache(config.project_root).write(5001)
        assert available_port(config, allocator=_allocator(config)) == 5001
        assert PortCache(config.project_root).read() == 5001

    def test_leftover_override_in_cache_is_replaced(self, make_config):
        config = make_config()
        PortCache(config.project_root).write(5004)
        assert available_port(config, allocator=_allocator(config)) == 5001
        assert PortCache(config.project_root).read() == 5001

    def test_cached_port_outside_pool_is_ignored(self, make_config):
        config = make_config()
        PortCache(config.project_root).write(3000)
        assert available_port(config, allocator=_allocator(config)) == 5001

    def test_cached_reserved_port_not_handed_to_linked_worktree(self, make_config, tmp_path):
        main = tmp_path / "main-checkout"
        main.mkdir()
        config = make_config(port_policy="reserved-base")
        worktrees = [str(main.resolve()), str(config.project_root.resolve())]
        alloc = PortAllocator.from_config(
            config.dev_server,
            list_worktrees_fn=StaticWorktrees(worktrees),
            environ={},
        )
        PortCache(config.project_root).write(5001)

        port = available_port(config, allocator=alloc)

        assert port != 5001
        assert port == alloc.computed_port(config.project_root)
        assert PortCache(config.project_root).read() == port

    def test_override_wins_and_is_cached(self, make_config):
        config = make_config()
        PortCache(config.project_root).write(5004)
        alloc = _allocator(config, env={"PORT": "3100"})
        assert available_port(config, allocator=alloc) == 3100
        assert PortCache(config.project_root).read() == 3100


class TestPortFromFile:
    def test_cached_value_returned_without_probing(self, make_config):
        config = make_config()
        PortCache(config.project_root).write(5003)
        assert port_from_file(config, allocator=_allocator(config)) == 5003

    def test_falls_back_to_assignment(self, make_config):
        config = make_config()
        assert port_from_file(config, allocator=_allocator(config)) == 5001
