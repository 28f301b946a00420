"""Tests for ProcessDetector."""

import pytest

from vpsdash.config import Settings
from vpsdash.detector import (
    InstallPathRule,
    JavaCommandRule,
    MatchRule,
    NameRule,
    ProcessDetector,
    SubstringRule,
    default_rules,
)
from vpsdash.models import DetectionReason


class TestRules:
    """Each rule is checked on its own."""

    def test_java_command_rule(self, proc_factory):
        rule = JavaCommandRule("minecraft")
        assert rule.matches(proc_factory(1, "java", "java -jar minecraft_server.jar"))
        assert not rule.matches(proc_factory(2, "java", "java -jar other.jar"))
        assert not rule.matches(proc_factory(3, "python", "python minecraft.py"))

    def test_name_rule_is_case_insensitive(self, proc_factory):
        assert NameRule("minecraft").matches(proc_factory(1, "Minecraft-Server"))

    def test_install_path_rule(self, proc_factory):
        rule = InstallPathRule("/srv/mc")
        assert rule.matches(proc_factory(1, "sh", "/srv/mc/run.sh"))
        assert not rule.matches(proc_factory(2, "sh", "/srv/web/run.sh"))

    def test_substring_rule_checks_name_and_command(self, proc_factory):
        rule = SubstringRule(("bedrock",))
        assert rule.matches(proc_factory(1, "bedrock_server"))
        assert rule.matches(proc_factory(2, "x", "/opt/bedrock/bin"))

    def test_base_rule_is_abstract(self):
        with pytest.raises(TypeError):
            MatchRule()

    def test_default_rules_order(self):
        names = [rule.name for rule in default_rules("minecraft", "/srv/mc")]
        assert names == ["java-command", "name", "install-path"]

    def test_default_rules_without_install_path(self):
        names = [rule.name for rule in default_rules("minecraft")]
        assert names == ["java-command", "name"]


class TestDefaultHeuristic:
    """Detection with the built-in heuristic."""

    def test_matches_java_with_minecraft_command(self, proc_factory):
        detector = ProcessDetector()
        result = detector.detect([
            proc_factory(1, "node", "node server.js"),
            proc_factory(2, "java", "java -Xmx2G -jar minecraft_server.jar nogui"),
        ])

        assert result.matched is True
        assert result.pid == 2
        assert result.reason is DetectionReason.DEFAULT
        assert result.rule == "java-command"

    def test_unrelated_listener_does_not_match(self, proc_factory):
        result = ProcessDetector().detect([proc_factory(10, "nginx", "nginx: master process /usr/sbin/nginx")])

        assert result.matched is False
        assert result.pid is None
        assert result.reason is DetectionReason.DEFAULT_NO_MATCH

    def test_empty_list(self):
        result = ProcessDetector().detect([])

        assert result.matched is False
        assert result.pid is None
        assert result.reason.value == "default:no-match"

    def test_first_match_in_snapshot_order_wins(self, proc_factory):
        result = ProcessDetector().detect([
            proc_factory(5, "minecraft"),
            proc_factory(6, "java", "java -jar minecraft.jar"),
        ])
        assert result.pid == 5
        assert result.rule == "name"

    def test_install_path(self, proc_factory):
        detector = ProcessDetector(install_path="/home/beto/minecraft_n")
        result = detector.detect([proc_factory(7, "bash", "bash /home/beto/minecraft_n/start.sh")])
        assert result.pid == 7
        assert result.rule == "install-path"

    def test_custom_keyword(self, proc_factory):
        detector = ProcessDetector(keyword="terraria")
        assert detector.detect([proc_factory(8, "TerrariaServer")]).pid == 8


class TestOverride:
    """Detection with configured override matchers."""

    def test_override_replaces_default(self, proc_factory):
        detector = ProcessDetector(overrides=["bedrock_server", "mc"])
        result = detector.detect([
            proc_factory(100, "bedrock_server", "/srv/mc/bedrock_server"),
            proc_factory(101, "node", "node server.js"),
        ])

        assert result.matched is True
        assert result.pid == 100
        assert result.reason is DetectionReason.ENV_OVERRIDE

    def test_override_no_match(self, proc_factory):
        detector = ProcessDetector(overrides=["definitely-not-minecraft"])
        result = detector.detect([proc_factory(200, "java", "java -jar minecraft.jar")])

        assert result.matched is False
        assert result.pid is None
        assert result.reason.value == "env-override:no-match"

    def test_override_is_case_insensitive(self, proc_factory):
        detector = ProcessDetector(overrides=["BEDROCK"])
        assert detector.detect([proc_factory(1, "bedrock_server")]).matched

    def test_from_settings(self, proc_factory):
        settings = Settings.from_env({"MC_PROCESS_MATCH": "paper"})
        detector = ProcessDetector.from_settings(settings)
        assert detector.detect([proc_factory(3, "java", "java -jar paper.jar")]).reason is DetectionReason.ENV_OVERRIDE


def test_matching_returns_all_instances(proc_factory, minecraft_processes):
    processes = minecraft_processes + [proc_factory(789, "java", "java -jar minecraft.jar --port 25566")]
    pids = [proc.pid for proc in ProcessDetector().matching(processes)]
    assert pids == [123, 789]
