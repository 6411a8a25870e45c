from __future__ import annotations

from pathlib import Path

import pytest

from silentprobe.artifacts.canonical_json import canonical_dumps, read_jsonl, write_jsonl
from silentprobe.obs.run_artifacts import (
    DETERMINISTIC_GENERATED_AT,
    generated_at,
    get_default_run_root,
    make_run_id,
    normalize_timestamp_mode,
    resolve_run_dir,
)


def test_run_root_precedence(tmp_path: Path) -> None:
    cli_root = tmp_path / "cli"
    env = {"SILENTPROBE_RUN_ROOT": str(tmp_path / "env")}

    assert get_default_run_root(cli_root, env=env) == cli_root.resolve()
    assert get_default_run_root(None, env=env) == (tmp_path / "env").resolve()
    assert get_default_run_root(None, cwd=tmp_path, env={}) == (tmp_path / "out" / "runs").resolve()


def test_timestamp_modes() -> None:
    assert normalize_timestamp_mode(" Wallclock ") == "now"
    assert normalize_timestamp_mode("deterministic") == "deterministic"
    with pytest.raises(ValueError):
        normalize_timestamp_mode("yesterday")


def test_deterministic_run_ids_and_timestamps(tmp_path: Path) -> None:
    assert make_run_id("SCAN", "deterministic") == "SCAN_DETERMINISTIC"
    assert make_run_id("  ", "deterministic") == "SCAN_DETERMINISTIC"
    assert make_run_id("SCAN", "now").startswith("SCAN_2")
    assert generated_at("deterministic") == DETERMINISTIC_GENERATED_AT
    assert generated_at("wallclock").endswith("Z")
    assert resolve_run_dir(run_root=tmp_path, timestamp_mode="deterministic") == (
        tmp_path / "SCAN_DETERMINISTIC"
    ).resolve()


def test_canonical_json_is_sorted_and_compact(tmp_path: Path) -> None:
    assert canonical_dumps({"b": 1, "a": {"d": [1, 2], "c": "é"}}) == '{"a":{"c":"é","d":[1,2]},"b":1}'

    path = tmp_path / "nested" / "records.jsonl"
    assert write_jsonl(path, [{"z": 1}, {"y": 2}]) == 2
    path.write_text(path.read_text(encoding="utf-8") + "\n\n", encoding="utf-8")
    assert read_jsonl(path) == [{"z": 1}, {"y": 2}]
