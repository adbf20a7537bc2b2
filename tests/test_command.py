"""Tests for sonar_orchestrator.command."""
from unittest.mock import patch

import pytest

from sonar_orchestrator.command import JVM_FLAGS, ServerCommandLineFactory, java_executable
from sonar_orchestrator.errors import StartupError


@pytest.fixture
def app_jar(server_home):
    jar = server_home / "lib" / "sonar-application-10.4.0.87286.jar"
    jar.parent.mkdir(parents=True)
    jar.write_bytes(b"jar")
    return jar


class TestJavaExecutable:
    def test_path_lookup_without_home(self):
        with patch("sonar_orchestrator.command.sys.platform", "linux"):
            assert java_executable(None) == "java"

    def test_path_lookup_when_home_missing(self, tmp_path):
        with patch("sonar_orchestrator.command.sys.platform", "linux"):
            assert java_executable(tmp_path / "no-jdk") == "java"

    def test_configured_home(self, tmp_path):
        with patch("sonar_orchestrator.command.sys.platform", "linux"):
            assert java_executable(tmp_path) == str(tmp_path / "bin" / "java")

    def test_windows(self, tmp_path):
        with patch("sonar_orchestrator.command.sys.platform", "win32"):
            assert java_executable(None) == "java.exe"


class TestServerCommandLineFactory:
    def test_command(self, handle, app_jar):
        command = ServerCommandLineFactory().create(handle)
        assert command[1:len(JVM_FLAGS) + 1] == list(JVM_FLAGS)
        assert command[-2:] == ["-jar", "lib/sonar-application-10.4.0.87286.jar"]

    def test_flags(self):
        assert JVM_FLAGS == (
            "-Xmx32m",
            "-server",
            "-Djava.awt.headless=true",
            "-Dsonar.enableStopCommand=true",
            "-Djava.net.preferIPv4Stack=true",
        )

    def test_jar_in_subdirectory_is_relative(self, handle, server_home):
        jar = server_home / "lib" / "app" / "sonar-application-5.6.jar"
        jar.parent.mkdir(parents=True)
        jar.write_bytes(b"jar")
        assert ServerCommandLineFactory().create(handle)[-1] == "lib/app/sonar-application-5.6.jar"

    def test_uses_java_home(self, handle, app_jar, tmp_path):
        command = ServerCommandLineFactory(java_home=tmp_path).create(handle)
        assert command[0] == java_executable(tmp_path)

    def test_no_application_jar(self, handle):
        with pytest.raises(StartupError, match="No or too many sonar-application"):
            ServerCommandLineFactory().create(handle)

    def test_two_application_jars(self, handle, app_jar):
        (app_jar.parent / "sonar-application-9.9.jar").write_bytes(b"jar")
        with pytest.raises(StartupError, match="No or too many sonar-application"):
            ServerCommandLineFactory().create(handle)
