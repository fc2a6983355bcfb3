"""Tests for command template substitution."""

from __future__ import annotations

from pathlib import Path

from fanout.template import (
    HOME_DIRECTORY,
    HOST_NAME,
    HOST_USER_ID,
    ROOT_DIRECTORY,
    SOURCE_DIRECTORY,
    SSH_PRIVATE_KEY,
    HostParameters,
    build_variables,
    placeholder,
    resolve,
)


class TestResolve:
    def test_substitutes_every_variable(self) -> None:
        result = resolve("ssh ${hostUserId}@${hostName}", {"hostUserId": "root", "hostName": "h1"})

        assert result == "ssh root@h1"

    def test_replaces_every_occurrence(self) -> None:
        assert resolve("${a}-${a}-${a}", {"a": "x"}) == "x-x-x"

    def test_unused_variable_is_a_no_op(self) -> None:
        assert resolve("uptime", {"hostName": "h1"}) == "uptime"

    def test_unknown_placeholder_is_left_as_is(self) -> None:
        result = resolve("rsync ${sourceDirectory} ${hostName}:/opt", {"hostName": "h1"})

        assert result == "rsync ${sourceDirectory} h1:/opt"

    def test_values_are_not_expanded_again(self) -> None:
        result = resolve("echo ${a} ${b}", {"a": "${b}", "b": "B"})

        assert result == "echo ${b} B"

    def test_order_of_variables_does_not_matter(self) -> None:
        template = "${x}/${y}/${z}"
        forward = resolve(template, {"x": "1", "y": "${z}", "z": "3"})
        backward = resolve(template, {"z": "3", "y": "${z}", "x": "1"})

        assert forward == backward == "1/${z}/3"

    def test_resolving_twice_is_a_fixed_point(self) -> None:
        variables = {"hostUserId": "deploy", "hostName": "db1"}
        once = resolve("scp -r /src ${hostUserId}@${hostName}:/dst", variables)

        assert resolve(once, variables) == once

    def test_unterminated_placeholder_is_kept(self) -> None:
        assert resolve("echo ${hostName", {"hostName": "h1"}) == "echo ${hostName"

    def test_nested_opener_still_resolves_inner_placeholder(self) -> None:
        assert resolve("${a${b}", {"b": "B"}) == "${aB"

    def test_placeholder_literal(self) -> None:
        assert placeholder("hostName") == "${hostName}"


class TestBuildVariables:
    def test_required_values(self) -> None:
        variables = build_variables("h1", HostParameters(user_id="root"))

        assert variables == {HOST_NAME: "h1", HOST_USER_ID: "root"}

    def test_all_values(self, tmp_path: Path) -> None:
        key = tmp_path / "id_rsa"
        params = HostParameters(
            user_id="deploy",
            root_directory="/opt/app",
            home_directory="/var/lib/app",
            ssh_private_key=key,
            source_directory=tmp_path,
        )

        variables = build_variables("db1", params)

        assert variables[HOST_NAME] == "db1"
        assert variables[HOST_USER_ID] == "deploy"
        assert variables[ROOT_DIRECTORY] == "/opt/app"
        assert variables[HOME_DIRECTORY] == "/var/lib/app"
        assert variables[SSH_PRIVATE_KEY] == str(key)
        assert variables[SOURCE_DIRECTORY] == str(tmp_path)

    def test_relative_paths_become_absolute(self) -> None:
        params = HostParameters(user_id="root", ssh_private_key=Path("keys/id_rsa"))

        variables = build_variables("h1", params)

        assert Path(variables[SSH_PRIVATE_KEY]).is_absolute()
        assert variables[SSH_PRIVATE_KEY].endswith("keys/id_rsa")

    def test_optional_values_missing_when_not_set(self) -> None:
        variables = build_variables("h1", HostParameters(user_id="root"))

        assert SSH_PRIVATE_KEY not in variables
        assert SOURCE_DIRECTORY not in variables
        assert resolve("ssh -i ${sshPrivateKey} ${hostName}", variables) == "ssh -i ${sshPrivateKey} h1"

    def test_extra_variables_included_but_cannot_override_host(self) -> None:
        params = HostParameters(user_id="root", extra={"port": "2222", HOST_NAME: "spoofed"})

        variables = build_variables("h1", params)

        assert variables["port"] == "2222"
        assert variables[HOST_NAME] == "h1"

    def test_built_fresh_per_host(self) -> None:
        params = HostParameters(user_id="root")

        first = build_variables("h1", params)
        second = build_variables("h2", params)

        assert first[HOST_NAME] == "h1"
        assert second[HOST_NAME] == "h2"
