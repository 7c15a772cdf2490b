import io

import pytest
from rich.console import Console

from playctl.control import PlayerControl
from playctl.errors import AlreadyRunningError, InvalidSelectionError, TooManyErrorsError
from playctl.menu import StreamMenu, resolve_selection


def _inputs(*lines):
    it = iter(lines)

    def read(prompt):
        try:
            return next(it)
        except StopIteration:
            raise EOFError from None

    return read


class StubSelector:
    def __init__(self):
        self.runs = 0

    def run(self):
        self.runs += 1


def make_menu(config, *lines, **kwargs):
    console = Console(file=io.StringIO(), width=100, highlight=False)
    return StreamMenu(
        config,
        control=PlayerControl(config),
        console=console,
        input_fn=_inputs(*lines),
        **kwargs,
    )


def output(menu):
    return menu.console.file.getvalue()


class TestResolveSelection:
    def test_catalog_id(self, config):
        stream, target = resolve_selection(config.streams, "2")
        assert stream.name == "Other"
        assert target == "2"

    def test_catalog_url(self, config):
        stream, target = resolve_selection(config.streams, "https://example.com/other")
        assert stream.id == 2
        assert target == "https://example.com/other"

    def test_foreign_url(self, config):
        stream, target = resolve_selection(config.streams, "https://example.com/else")
        assert stream is None
        assert target == "https://example.com/else"

    @pytest.mark.parametrize("option", ["99", "zzz", "", "example.com/x"])
    def test_invalid(self, config, option):
        with pytest.raises(InvalidSelectionError, match="invalid option"):
            resolve_selection(config.streams, option)


class TestStreamMenu:
    """Tests for the line-oriented stream menu."""

    def test_not_running_banner(self, config):
        menu = make_menu(config)
        menu.run()

        assert menu.state.status == "info: 'playctl' is not running, see help"
        assert "### PLAYCTL ###" in output(menu)
        assert " 1) Test" in output(menu)
        assert " 2) Other" in output(menu)

    def test_select_stream(self, running, player, no_display):
        menu = make_menu(running, "1")
        menu.run()

        assert menu.state.status == "Test"
        assert menu.state.stream_id == 1
        assert "*1) Test" in output(menu)
        assert "loadfile" in player.verbs
        assert player.verbs[-1] == "get_property"

    def test_select_catalog_url(self, running, player, no_display):
        menu = make_menu(running)
        menu.dispatch("https://example.com/other")

        assert menu.state.stream_id == 2
        assert menu.state.status == "Other"

    def test_current_path_marks_stream(self, running, player):
        player.properties["path"] = "https://example.com/other"
        menu = make_menu(running)
        menu.run()

        assert "*2) Other" in output(menu)
        assert menu.state.status == "Other"

    def test_invalid_options_counted(self, config):
        menu = make_menu(config)
        for _ in range(4):
            menu.dispatch("nope")
            assert menu.state.status == "invalid option"

        with pytest.raises(TooManyErrorsError):
            menu.dispatch("nope")

    def test_too_many_errors_ends_run(self, config):
        menu = make_menu(config, "a", "b", "c", "d", "e", "help")
        with pytest.raises(TooManyErrorsError):
            menu.run()

    def test_selection_resets_counter(self, running, player, no_display):
        menu = make_menu(running)
        for _ in range(4):
            menu.dispatch("nope")
        menu.dispatch("1")
        assert menu.state.errors == 0
        menu.dispatch("nope")
        assert menu.state.status == "invalid option"

    def test_exit(self, config):
        menu = make_menu(config)
        assert menu.dispatch("exit") is False
        assert menu.dispatch("clear") is True

    def test_help(self, config):
        menu = make_menu(config)
        menu.dispatch("?")
        assert "volume n       # sets volume number between (0-100) [vol]" in menu.state.status

    def test_hints(self, config):
        menu = make_menu(config)
        menu.dispatch("number")
        assert menu.state.status == "info: simply put the stream number and press ENTER"

    def test_player_verbs(self, running, player):
        menu = make_menu(running)
        menu.dispatch("seek +10")
        assert menu.state.status == "time: 00:00:42"
        menu.dispatch("vol 30")
        assert menu.state.status == "volume: 30"
        menu.dispatch("mute")
        assert menu.state.status == "mute: no"
        menu.dispatch("status")
        assert menu.state.status.startswith("status\nmute:")

    def test_error_shown_as_status(self, running, player):
        menu = make_menu(running, "volume 500")
        menu.run()
        assert menu.state.status == "volume must be between 0 and 100"

    def test_start_when_running(self, running):
        menu = make_menu(running)
        with pytest.raises(AlreadyRunningError):
            menu.dispatch("start")

    def test_start(self, config):
        menu = make_menu(config, starter=lambda: 4242)
        menu.dispatch("start")
        assert menu.state.status == "info: playctl pid: 4242"

    def test_selector(self, running, player):
        selector = StubSelector()
        menu = make_menu(running, selector_factory=lambda: selector)
        menu.dispatch("sf")
        menu.dispatch(".")

        assert selector.runs == 2
        assert menu.state.status == "info: 'sf' was closed"

    def test_stop(self, running, player):
        menu = make_menu(running)
        menu.state.stream_id = 1
        menu.dispatch("stop")

        assert menu.state.stream_id is None
        assert player.verbs == ["playlist-remove", "stop", "quit"]
        assert not running.paths.lock_dir.exists()
