import io
import os
import signal
import stat

import pytest

from playctl.errors import NotRunningError, TerminalTooSmallError
from playctl.ipc import Success
from playctl.selector import (
    FileSelector,
    body_capacity,
    file_indicator,
    list_directory,
    page_count,
)
from playctl.signals import Interrupted, SignalGuard
from playctl.terminal import Terminal, decode_key


class FakeTerminal(Terminal):
    """Scripted keys in, screen writes captured."""

    def __init__(self, keys, rows=20, cols=80):
        super().__init__(stdin=io.StringIO(), stdout=io.StringIO())
        self.keys = list(keys)
        self.rows = rows
        self.cols = cols

    def size(self):
        return self.rows, self.cols

    def read_key(self):
        return self.keys.pop(0) if self.keys else "escape"

    @property
    def output(self):
        return self.stdout.getvalue()


class StubChannel:
    def __init__(self, config):
        self.config = config
        self.guard = SignalGuard()
        self.sent = []

    def send_one(self, command):
        self.sent.append(command)
        return Success(data={}, raw={"error": "success", "data": {}})


class StubControl:
    def __init__(self, config):
        self.channel = StubChannel(config)
        self.played = []

    def play(self, target):
        self.played.append(target)
        return target


@pytest.fixture
def music(short_tmp):
    root = short_tmp / "music"
    root.mkdir()
    return root


def make_selector(config, start_dir, keys, rows=20):
    terminal = FakeTerminal(keys, rows=rows)
    return FileSelector(config, control=StubControl(config), terminal=terminal, start_dir=start_dir)


def populate(root, count):
    for i in range(count):
        (root / f"f{i:02d}.mp3").write_bytes(b"")


class TestHelpers:
    def test_file_indicator(self, music):
        (music / "plain").write_text("")
        exe = music / "exe"
        exe.write_text("")
        exe.chmod(0o755)
        (music / "dir").mkdir()
        (music / "link").symlink_to("plain")
        os.mkfifo(music / "fifo")

        labels = {e.name: e.indicator for e in list_directory(music)}
        assert labels == {"dir": "/", "exe": "*", "fifo": "|", "link": "@", "plain": ""}

    def test_socket_indicator(self):
        assert file_indicator(stat.S_IFSOCK | 0o644) == "="

    def test_list_missing_directory(self, music):
        from playctl.errors import FilesystemError

        with pytest.raises(FilesystemError):
            list_directory(music / "nope")

    @pytest.mark.parametrize("rows,capacity", [(8, 1), (9, 1), (13, 5), (24, 16)])
    def test_body_capacity(self, rows, capacity):
        assert body_capacity(rows) == capacity

    @pytest.mark.parametrize("rows", [0, 5, 7])
    def test_body_capacity_too_small(self, rows):
        with pytest.raises(TerminalTooSmallError):
            body_capacity(rows)

    @pytest.mark.parametrize("entries", [0, 1, 4, 5, 6, 23])
    @pytest.mark.parametrize("rows", [8, 13, 24])
    def test_pages_cover_every_entry(self, entries, rows):
        cap = body_capacity(rows)
        pages = page_count(entries, cap)
        assert (pages - 1) * cap < entries <= pages * cap or entries == pages == 0


class TestFileSelector:
    """Tests for keyboard-driven browsing."""

    def test_requires_running(self, config, music):
        with pytest.raises(NotRunningError):
            make_selector(config, music, []).run()

    def test_terminal_too_small(self, running, music):
        populate(music, 3)
        sel = make_selector(running, music, [], rows=5)

        with pytest.raises(TerminalTooSmallError):
            sel.run()
        assert sel.terminal.output == ""

    def test_first_page(self, running, music):
        populate(music, 3)
        sel = make_selector(running, music, ["q"])
        sel.run()

        out = sel.terminal.output
        assert "### PLAYCTL ###" in out
        assert " 1) f00.mp3" in out
        assert "# 1/3) f00.mp3" in out
        assert "> 1/1" in out
        assert "\033[7m 1) f00.mp3\033[0m" in out

    def test_empty_directory(self, running, music):
        sel = make_selector(running, music, ["enter", "j", "J"])
        sel.run()

        assert "empty directory" in sel.terminal.output
        assert sel.control.played == []

    def test_line_movement_crosses_pages(self, running, music):
        populate(music, 7)
        # 13 rows leave room for 5 entries per page
        sel = make_selector(running, music, ["j"] * 5, rows=13)
        sel.run()

        s = sel.state
        assert s.page == 2
        assert s.current().name == "f05.mp3"

    def test_line_up_goes_back_a_page(self, running, music):
        populate(music, 7)
        sel = make_selector(running, music, ["j"] * 5 + ["k"], rows=13)
        sel.run()

        s = sel.state
        assert s.page == 1
        assert s.current().name == "f04.mp3"

    def test_page_keys(self, running, music):
        populate(music, 25)
        sel = make_selector(running, music, ["l", "right", "h"], rows=13)
        sel.run()

        s = sel.state
        assert s.pages == 5
        assert s.page == 2
        assert s.offset == 5
        assert s.current().name == "f05.mp3"

    def test_page_forward_stops_at_last_page(self, running, music):
        populate(music, 7)
        sel = make_selector(running, music, ["l", "l", "l"], rows=13)
        sel.run()
        assert sel.state.page == 2

    def test_top_and_bottom(self, running, music):
        populate(music, 4)
        sel = make_selector(running, music, ["J"])
        sel.run()
        assert sel.state.current().name == "f03.mp3"

        sel = make_selector(running, music, ["J", "K"])
        sel.run()
        assert sel.state.current().name == "f00.mp3"

    def test_select_file_plays(self, running, music):
        populate(music, 2)
        sel = make_selector(running, music, ["j", "enter"])
        sel.run()

        assert sel.control.played == [str(music / "f01.mp3")]
        assert len(sel.control.channel.sent) == 1

    def test_directory_navigation(self, running, music):
        (music / "a.mp3").write_bytes(b"")
        sub = music / "sub"
        sub.mkdir()
        (sub / "inner.mp3").write_bytes(b"")

        sel = make_selector(running, music, ["j", "enter"])
        sel.run()
        assert sel.state.cwd == sub
        assert [e.name for e in sel.state.files] == ["inner.mp3"]

        sel = make_selector(running, music, ["j", "enter", "-", "_"])
        sel.run()
        assert sel.state.cwd == sub
        assert sel.state.old_cwd == music

    def test_home(self, running, music, monkeypatch):
        monkeypatch.setenv("HOME", str(music))
        sel = make_selector(running, music / "..", ["~"])
        sel.run()
        assert sel.state.cwd == music

    def test_symlinked_directory(self, running, music):
        target = music / "real"
        target.mkdir()
        (target / "x.mp3").write_bytes(b"")
        (music / "alias").symlink_to("real")

        sel = make_selector(running, music, ["enter"])
        sel.run()

        assert sel.state.cwd == music / "alias"
        assert sel.control.played == []

    def test_dangling_symlink(self, running, music):
        (music / "broken").symlink_to("gone.mp3")

        sel = make_selector(running, music, ["enter"])
        sel.run()

        assert "no such file or directory" in sel.terminal.output
        assert sel.control.played == []
        assert sel.state.cwd == music

    def test_unknown_key(self, running, music):
        populate(music, 1)
        sel = make_selector(running, music, ["x"])
        sel.run()
        assert "keystroke 'x' is not supported" in sel.terminal.output

    def test_help(self, running, music):
        populate(music, 1)
        sel = make_selector(running, music, ["?", "j", "escape"])
        sel.run()

        out = sel.terminal.output
        assert "# help" in out
        assert "Press any key to go back" in out
        # screen drawn again after the help key press
        assert out.count("### PLAYCTL ###") == 2

    def test_screen_cleared_on_exit(self, running, music):
        sel = make_selector(running, music, ["escape"])
        sel.run()
        assert sel.terminal.output.endswith("\033[0m\033[2J\033[H")

    @pytest.mark.parametrize("raw", [b"\r", b"\n"])
    def test_both_line_endings_select(self, running, music, raw):
        populate(music, 1)
        sel = make_selector(running, music, [decode_key(raw)])
        sel.run()
        assert sel.control.played == [str(music / "f00.mp3")]

    def test_signal_during_metadata_poll_ends_selector(self, running, music):
        populate(music, 1)
        sel = make_selector(running, music, ["enter", "j"])

        def interrupted(command):
            raise Interrupted(signal.SIGTERM, 0)

        sel.control.channel.send_one = interrupted
        with pytest.raises(Interrupted):
            sel.run()
        assert sel.terminal.keys == ["j"]
