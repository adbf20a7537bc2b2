"""Tests for the sonar-orchestrator command line."""
from unittest.mock import MagicMock, patch

import pytest

from sonar_orchestrator.cli import (
    EXIT_ERROR,
    EXIT_INTERRUPTED,
    EXIT_STARTUP_FAILURE,
    EXIT_SUCCESS,
    EXIT_TIMEOUT,
    main,
    parse_location,
)
from sonar_orchestrator.distribution import BundledPluginsPolicy, Edition
from sonar_orchestrator.errors import ResolutionError, StartupError, StartupTimeoutError
from sonar_orchestrator.locator import FileLocation, MavenLocation, URLLocation
from sonar_orchestrator.server import ProcessState, ServerHandle
from sonar_orchestrator.version import Version


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_handle(tmp_path):
    return ServerHandle(
        home=tmp_path / "sonarqube-10.4",
        edition=Edition.COMMUNITY,
        version=Version("10.4.0.87286"),
        url="http://127.0.0.1:9000",
    )


@pytest.fixture
def mock_orchestrator(fake_handle):
    instance = MagicMock()
    instance.resolve_and_install.return_value = fake_handle
    with patch("sonar_orchestrator.orchestrator.Orchestrator", return_value=instance) as cls:
        cls.instance = instance
        yield cls


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

class TestParseLocation:
    def test_url(self):
        assert parse_location("https://example.com/p.jar") == URLLocation("https://example.com/p.jar")

    def test_maven(self):
        assert parse_location("org.sonarsource.java:sonar-java-plugin:7.30") == MavenLocation(
            "org.sonarsource.java", "sonar-java-plugin", "7.30")

    def test_maven_zip(self):
        assert parse_location("g:a:1.0", packaging="zip").packaging == "zip"

    def test_file(self, tmp_path):
        assert parse_location(str(tmp_path / "p.jar")) == FileLocation(tmp_path / "p.jar")


class TestNoCommand:
    def test_prints_help(self, capsys):
        assert main([]) == EXIT_SUCCESS
        assert "sonar-orchestrator" in capsys.readouterr().out

    def test_version_or_zip_required(self):
        with pytest.raises(SystemExit):
            main(["install"])


# ---------------------------------------------------------------------------
# install
# ---------------------------------------------------------------------------

class TestInstall:
    def test_builds_spec(self, mock_orchestrator, fake_handle, capsys):
        code = main([
            "install", "--version", "LATEST_RELEASE[10.4]", "--edition", "developer",
            "--plugin", "g:a:1.0", "-D", "sonar.web.port=9001", "-D", "sonar.x=a=b",
            "--keep-bundled-plugin", "sonar-java",
        ])
        assert code == EXIT_SUCCESS
        spec = mock_orchestrator.instance.resolve_and_install.call_args.args[0]
        assert spec.edition is Edition.DEVELOPER
        assert spec.version == "LATEST_RELEASE[10.4]"
        assert spec.plugins == (MavenLocation("g", "a", "1.0"),)
        assert spec.server_properties == {"sonar.web.port": "9001", "sonar.x": "a=b"}
        assert spec.bundled_plugins_policy == BundledPluginsPolicy.keep_matching("sonar-java")
        out = capsys.readouterr().out
        assert str(fake_handle.home) in out
        assert fake_handle.url in out

    def test_zip(self, mock_orchestrator, tmp_path):
        archive = tmp_path / "sonarqube-9.9.zip"
        assert main(["install", "--zip", str(archive), "--keep-bundled-plugins"]) == EXIT_SUCCESS
        spec = mock_orchestrator.instance.resolve_and_install.call_args.args[0]
        assert spec.zip_location == FileLocation(archive)
        assert spec.version is None
        assert spec.bundled_plugins_policy.keep_all

    def test_version_and_zip_exclusive(self):
        with pytest.raises(SystemExit):
            main(["install", "--version", "9.9", "--zip", "x.zip"])

    def test_bad_property(self):
        with pytest.raises(SystemExit):
            main(["install", "--version", "9.9", "-D", "novalue"])

    def test_error(self, mock_orchestrator, capsys):
        mock_orchestrator.instance.resolve_and_install.side_effect = ResolutionError("Version can not be resolved")
        assert main(["install", "--version", "DEV"]) == EXIT_ERROR
        assert "Error: Version can not be resolved" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------

class TestRun:
    def test_passes_timeouts(self, mock_orchestrator):
        process = mock_orchestrator.instance.start.return_value
        process.state = ProcessState.STARTED
        process.is_alive = False
        main(["run", "--version", "9.9", "--startup-timeout", "5", "--stop-timeout", "2"])
        kwargs = mock_orchestrator.call_args.kwargs
        assert kwargs == {"startup_timeout": 5.0, "stop_timeout": 2.0}

    def test_server_exits_on_its_own(self, mock_orchestrator, fake_handle, capsys):
        process = mock_orchestrator.instance.start.return_value
        process.state = ProcessState.STARTED
        process.is_alive = False
        assert main(["run", "--version", "9.9"]) == EXIT_ERROR
        mock_orchestrator.instance.stop.assert_called_with(fake_handle)
        assert fake_handle.url in capsys.readouterr().out

    def test_ctrl_c_stops_server(self, mock_orchestrator, fake_handle):
        process = mock_orchestrator.instance.start.return_value
        process.state = ProcessState.STARTED
        process.is_alive = True
        with patch("sonar_orchestrator.cli.time.sleep", side_effect=KeyboardInterrupt):
            assert main(["run", "--version", "9.9"]) == EXIT_SUCCESS
        mock_orchestrator.instance.stop.assert_called_with(fake_handle)

    def test_interrupted_during_startup(self, mock_orchestrator, fake_handle):
        process = mock_orchestrator.instance.start.return_value
        process.state = ProcessState.STARTING
        assert main(["run", "--version", "9.9"]) == EXIT_INTERRUPTED
        mock_orchestrator.instance.stop.assert_called_with(fake_handle)

    @pytest.mark.parametrize("error,expected", [
        (StartupTimeoutError("Server did not start in timely fashion"), EXIT_TIMEOUT),
        (StartupError("Server startup failure", exit_code=1), EXIT_STARTUP_FAILURE),
        (ResolutionError("nope"), EXIT_ERROR),
    ])
    def test_errors_map_to_exit_codes(self, mock_orchestrator, capsys, error, expected):
        mock_orchestrator.instance.start.side_effect = error
        assert main(["run", "--version", "9.9"]) == expected
        assert capsys.readouterr().err.startswith("Error: ")
