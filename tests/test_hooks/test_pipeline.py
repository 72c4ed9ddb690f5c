"""End-to-end tests for gift_calc.hooks.pipeline: the host-facing entry points."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Callable

import pytest

from gift_calc.hooks import (
    DEFAULT_HOOKS_CONFIG,
    apply_after_command,
    apply_after_command_async,
    apply_before_command,
    apply_before_command_async,
    are_hooks_configured,
    default_hooks_config,
    initialize_hooks_config,
    run_command_with_hooks,
    validate_hooks_configuration,
)


TAG_HOOK = """
def hook(args, config, command):
    return {"config": {"tag": "seen"}}
"""

FAILING_HOOK = """
def hook(args, config, command):
    raise RuntimeError("hook exploded")
"""

RECORDING_AFTER_HOOK = """
import json

def hook(args, config, output, result, command):
    with open(config["record_to"], "w", encoding="utf-8") as f:
        json.dump({"args": args, "output": output, "result": result, "command": command}, f)
    return {"config": {"ignored": True}}
"""


# ---------------------------------------------------------------------------
# Before-command phase
# ---------------------------------------------------------------------------


class TestApplyBeforeCommand:
    def test_tag_is_added(
        self, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        path = write_hook("a.py", TAG_HOOK)
        hooks = hooks_section(before=[path], timeout_ms=100)
        config = {"hooks": hooks}

        result = apply_before_command([], config, "calc")

        assert result["tag"] == "seen"
        assert result["hooks"] == hooks
        assert "tag" not in config

    def test_hooks_see_args_and_command(
        self, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        path = write_hook(
            "echo.py",
            """
            def hook(args, config, command):
                return {"config": {"seen_args": args, "seen_command": command}}
            """,
        )
        result = apply_before_command(["100", "--friend"], {"hooks": hooks_section(before=[path])}, "calc")

        assert result["seen_args"] == ["100", "--friend"]
        assert result["seen_command"] == "calc"

    def test_deltas_fold_in_order(
        self, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        first = write_hook("first.py", 'def hook(a, config, c):\n    return {"config": {"amount": 10, "who": "first"}}\n')
        second = write_hook(
            "second.py",
            'def hook(a, config, c):\n    return {"config": {"amount": config["amount"] * 2}}\n',
        )
        result = apply_before_command([], {"hooks": hooks_section(before=[first, second])})

        assert result["amount"] == 20
        assert result["who"] == "first"

    @pytest.mark.parametrize(
        "config",
        [
            {},
            {"hooks": {"enabled": False, "beforePhase": {"enabled": True, "scripts": ["/x.py"]}}},
            {"hooks": {"enabled": True, "beforePhase": {"enabled": False, "scripts": ["/x.py"]}}},
            {"hooks": {"enabled": True, "beforePhase": {"enabled": True, "scripts": []}}},
        ],
    )
    def test_inactive_phase_returns_same_object(self, config: dict) -> None:
        assert apply_before_command([], config) is config

    def test_non_dict_config_returned_unchanged(self) -> None:
        assert apply_before_command([], None) is None

    def test_relative_paths_resolve_against_config_dir(
        self, tmp_path: Path, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        write_hook("rel.py", TAG_HOOK, directory=tmp_path / "confdir" / "hooks")
        config = {"hooks": hooks_section(before=["hooks/rel.py"])}

        result = apply_before_command([], config, config_dir=tmp_path / "confdir")
        assert result["tag"] == "seen"

    def test_relative_paths_default_to_gift_calc_config_dir(
        self,
        isolated_config: Path,
        write_hook: Callable[..., Path],
        hooks_section: Callable[..., dict],
    ) -> None:
        write_hook("rel.py", TAG_HOOK, directory=isolated_config / "config" / "gift-calc")
        result = apply_before_command([], {"hooks": hooks_section(before=["rel.py"])})
        assert result["tag"] == "seen"

    def test_failing_hook_is_fail_open(
        self,
        write_hook: Callable[..., Path],
        hooks_section: Callable[..., dict],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        bad = write_hook("bad.py", FAILING_HOOK)
        good = write_hook("good.py", TAG_HOOK)

        result = apply_before_command([], {"hooks": hooks_section(before=[bad, good])})

        assert result["tag"] == "seen"
        assert "hook exploded" not in capsys.readouterr().err

    def test_load_failure_is_fail_open(
        self, tmp_path: Path, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        good = write_hook("good.py", TAG_HOOK)
        config = {"hooks": hooks_section(before=[tmp_path / "missing.py", good])}

        assert apply_before_command([], config)["tag"] == "seen"

    def test_nothing_loaded_returns_original(
        self, tmp_path: Path, hooks_section: Callable[..., dict]
    ) -> None:
        config = {"hooks": hooks_section(before=[tmp_path / "missing.py"])}
        assert apply_before_command([], config) is config

    def test_timeout_is_fail_open(
        self, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        slow = write_hook("slow.py", "import time\ndef hook(a, b, c):\n    time.sleep(2)\n    return {'config': {'slow': True}}\n")
        good = write_hook("good.py", TAG_HOOK)

        result = apply_before_command([], {"hooks": hooks_section(before=[slow, good], timeout_ms=50)})

        assert result["tag"] == "seen"
        assert "slow" not in result

    def test_fail_on_error_exits_on_hook_failure(
        self,
        write_hook: Callable[..., Path],
        hooks_section: Callable[..., dict],
        plain_output: Any,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        bad = write_hook("bad.py", FAILING_HOOK)
        config = {"hooks": hooks_section(before=[bad], fail_on_error=True)}

        with pytest.raises(SystemExit) as exc_info:
            apply_before_command([], config)

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "Before-command hook errors:" in err
        assert "hook exploded" in err

    def test_fail_on_error_exits_on_load_failure(
        self,
        tmp_path: Path,
        write_hook: Callable[..., Path],
        hooks_section: Callable[..., dict],
        plain_output: Any,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        good = write_hook("good.py", TAG_HOOK)
        config = {"hooks": hooks_section(before=[good, tmp_path / "missing.py"], fail_on_error=True)}

        with pytest.raises(SystemExit) as exc_info:
            apply_before_command([], config)

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "Failed to load before-command hooks:" in err
        assert "does not exist" in err

    def test_fail_on_error_exits_on_timeout(
        self, write_hook: Callable[..., Path], hooks_section: Callable[..., dict], plain_output: Any
    ) -> None:
        slow = write_hook("slow.py", "import time\ndef hook(a, b, c):\n    time.sleep(2)\n")
        config = {"hooks": hooks_section(before=[slow], timeout_ms=50, fail_on_error=True)}

        with pytest.raises(SystemExit) as exc_info:
            apply_before_command([], config)
        assert exc_info.value.code == 1

    def test_hook_calling_sys_exit_does_not_exit_host(
        self, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        quitter = write_hook("quit.py", "import sys\ndef hook(a, b, c):\n    sys.exit(0)\n")
        good = write_hook("good.py", TAG_HOOK)

        result = apply_before_command([], {"hooks": hooks_section(before=[quitter, good])})
        assert result["tag"] == "seen"

    def test_verbose_prints_summary(
        self,
        write_hook: Callable[..., Path],
        hooks_section: Callable[..., dict],
        plain_output: Any,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        bad = write_hook("bad.py", FAILING_HOOK)
        good = write_hook("good.py", TAG_HOOK)

        apply_before_command([], {"hooks": hooks_section(before=[good, bad], verbose=True)})

        err = capsys.readouterr().err
        assert "Applying before-command hooks..." in err
        assert "Before-command hook errors:" in err
        assert "Hook execution: 1/2 succeeded" in err
        assert "✓ good.py" in err
        assert "✗ bad.py" in err

    def test_async_variant_inside_running_loop(
        self, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        path = write_hook("a.py", TAG_HOOK)

        async def host() -> dict:
            return await apply_before_command_async([], {"hooks": hooks_section(before=[path])}, "calc")

        assert asyncio.run(host())["tag"] == "seen"

    def test_sync_entry_point_inside_running_loop(
        self, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        path = write_hook("a.py", TAG_HOOK)
        config = {"hooks": hooks_section(before=[path])}

        async def host() -> dict:
            return apply_before_command([], config, "calc")

        assert asyncio.run(host())["tag"] == "seen"

    def test_sync_entry_point_inside_running_loop_fail_on_error(
        self,
        write_hook: Callable[..., Path],
        hooks_section: Callable[..., dict],
        plain_output: Any,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        bad = write_hook("bad.py", FAILING_HOOK)
        config = {"hooks": hooks_section(before=[bad], fail_on_error=True)}

        async def host() -> dict:
            return apply_before_command([], config, "calc")

        with pytest.raises(SystemExit) as exc_info:
            asyncio.run(host())

        assert exc_info.value.code == 1
        assert "hook exploded" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# After-command phase
# ---------------------------------------------------------------------------


class TestApplyAfterCommand:
    def test_hooks_observe_output_and_result(
        self, tmp_path: Path, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        path = write_hook("record.py", RECORDING_AFTER_HOOK)
        record = tmp_path / "record.json"
        config = {"hooks": hooks_section(after=[path]), "record_to": str(record)}

        returned = apply_after_command(["42"], config, "Suggested: 42.00", {"amount": 42.0}, "calc")

        assert returned is None
        assert json.loads(record.read_text(encoding="utf-8")) == {
            "args": ["42"],
            "output": "Suggested: 42.00",
            "result": {"amount": 42.0},
            "command": "calc",
        }
        assert "ignored" not in config

    def test_none_output_is_passed_through(
        self, tmp_path: Path, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        path = write_hook("record.py", RECORDING_AFTER_HOOK)
        record = tmp_path / "record.json"
        config = {"hooks": hooks_section(after=[path]), "record_to": str(record)}

        apply_after_command([], config, None, None)

        recorded = json.loads(record.read_text(encoding="utf-8"))
        assert recorded["output"] is None
        assert recorded["result"] is None

    def test_before_only_config_skips_after_phase(
        self, tmp_path: Path, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        path = write_hook("record.py", RECORDING_AFTER_HOOK)
        record = tmp_path / "record.json"
        config = {"hooks": hooks_section(before=[path]), "record_to": str(record)}

        apply_after_command([], config, "out", "res")
        assert not record.exists()

    def test_failure_is_fail_open(
        self, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        bad = write_hook("bad.py", "def hook(a, b, c, d, e):\n    raise ValueError('after failed')\n")
        assert apply_after_command([], {"hooks": hooks_section(after=[bad])}, "o", "r") is None

    def test_fail_on_error_exits(
        self,
        write_hook: Callable[..., Path],
        hooks_section: Callable[..., dict],
        plain_output: Any,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        bad = write_hook("bad.py", "def hook(a, b, c, d, e):\n    raise ValueError('after failed')\n")
        config = {"hooks": hooks_section(after=[bad], fail_on_error=True)}

        with pytest.raises(SystemExit) as exc_info:
            apply_after_command([], config, "o", "r")

        assert exc_info.value.code == 1
        assert "After-command hook errors:" in capsys.readouterr().err

    def test_async_variant(
        self, tmp_path: Path, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        path = write_hook("record.py", RECORDING_AFTER_HOOK)
        record = tmp_path / "record.json"
        config = {"hooks": hooks_section(after=[path]), "record_to": str(record)}

        asyncio.run(apply_after_command_async([], config, "out", 1, "calc"))
        assert json.loads(record.read_text(encoding="utf-8"))["result"] == 1

    def test_sync_entry_point_inside_running_loop(
        self, tmp_path: Path, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        path = write_hook("record.py", RECORDING_AFTER_HOOK)
        record = tmp_path / "record.json"
        config = {"hooks": hooks_section(after=[path]), "record_to": str(record)}

        async def host() -> None:
            apply_after_command([], config, "out", 7, "calc")

        asyncio.run(host())
        assert json.loads(record.read_text(encoding="utf-8"))["result"] == 7


# ---------------------------------------------------------------------------
# Host integration helpers
# ---------------------------------------------------------------------------


class TestRunCommandWithHooks:
    def test_wraps_action(
        self, tmp_path: Path, write_hook: Callable[..., Path], hooks_section: Callable[..., dict]
    ) -> None:
        before = write_hook("tag.py", TAG_HOOK)
        after = write_hook("record.py", RECORDING_AFTER_HOOK)
        record = tmp_path / "record.json"
        config = {"hooks": hooks_section(before=[before], after=[after]), "record_to": str(record)}
        seen: list[dict] = []

        def action(effective: dict) -> tuple[str, dict]:
            seen.append(effective)
            return f"tag={effective['tag']}", {"tag": effective["tag"]}

        output, result = run_command_with_hooks("calc", ["1"], config, action)

        assert seen[0]["tag"] == "seen"
        assert (output, result) == ("tag=seen", {"tag": "seen"})
        recorded = json.loads(record.read_text(encoding="utf-8"))
        assert recorded["output"] == "tag=seen"
        assert recorded["command"] == "calc"

    def test_without_hooks_action_gets_original_config(self) -> None:
        config = {"min": 1}
        output, result = run_command_with_hooks(None, [], config, lambda c: (c, c))
        assert output is config
        assert result is config


class TestAreHooksConfigured:
    @pytest.mark.parametrize(
        ("config", "expected"),
        [
            ({}, False),
            (None, False),
            ({"hooks": "on"}, False),
            ({"hooks": {"enabled": True}}, False),
            ({"hooks": {"enabled": True, "beforePhase": {"enabled": True, "scripts": ["/a.py"]}}}, True),
            ({"hooks": {"enabled": True, "afterPhase": {"enabled": True, "scripts": ["/a.py"]}}}, True),
            ({"hooks": {"enabled": False, "afterPhase": {"enabled": True, "scripts": ["/a.py"]}}}, False),
        ],
    )
    def test_cases(self, config: Any, expected: bool) -> None:
        assert are_hooks_configured(config) is expected


class TestValidateHooksConfiguration:
    def test_non_dict_is_invalid(self) -> None:
        validation = validate_hooks_configuration(["hooks"])
        assert validation.is_valid is False
        assert validation.errors == ["Configuration must be an object"]

    def test_missing_section_is_valid_defaults(self) -> None:
        validation = validate_hooks_configuration({"min": 1})
        assert validation.is_valid is True
        assert validation.hooks_config == DEFAULT_HOOKS_CONFIG
        assert validation.errors == []

    def test_invalid_fields_reported(self) -> None:
        validation = validate_hooks_configuration(
            {"hooks": {"enabled": True, "beforePhase": {"timeoutMs": 0}}}
        )
        assert validation.is_valid is False
        assert validation.hooks_config.enabled is True
        assert validation.errors == [
            "hooks.beforePhase.timeoutMs must be a positive integer <= 60000ms"
        ]


class TestInitializeHooksConfig:
    def test_returns_fresh_defaults(self) -> None:
        first = initialize_hooks_config()
        first["enabled"] = True
        assert initialize_hooks_config() == default_hooks_config()
        assert initialize_hooks_config()["enabled"] is False
