from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from hardcover_prompts import run_prompts
from hardcover_prompts.config import get_config
from hardcover_prompts.models import AggregationResult, FetchStatus, UserProfile


def test_run_prompts_writes_result_without_credentials(tmp_path, monkeypatch, capsys):
    """
    With no API key the CLI must still finish and write an (empty,
    tagged) result instead of crashing.
    """
    monkeypatch.delenv("HARDCOVER_API_KEY", raising=False)
    output = tmp_path / "out.json"

    result = run_prompts.run(["--username", "reader", "--output", str(output)])

    assert result.status is FetchStatus.CREDENTIAL_MISSING
    written = json.loads(output.read_text(encoding="utf-8"))
    assert written["status"] == "credential_missing"
    assert written["answers"] == []
    assert "HARDCOVER_API_KEY is not set" in capsys.readouterr().out


def test_run_prompts_passes_identity_and_concurrency(tmp_path, monkeypatch):
    monkeypatch.setenv("HARDCOVER_API_KEY", "token")
    cfg = get_config()
    canned = AggregationResult(
        answers=[], status=FetchStatus.OK, profile=UserProfile(35696, "reader")
    )

    with patch.object(run_prompts.AggregationOrchestrator, "run", return_value=canned) as fake_run:
        result = run_prompts.run(
            ["--user-id", "35696", "--max-concurrency", "7", "--output", str(tmp_path / "o.json")],
            cfg=cfg,
        )

    assert result is canned
    (identity,), _ = fake_run.call_args
    assert identity.account_id == 35696
    assert cfg.enrichment.max_concurrency == 7


@pytest.mark.parametrize("name", ["", "@"])
def test_run_prompts_rejects_empty_username(name, tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        run_prompts.run(["--username", name, "--output", str(tmp_path / "o.json")])

    assert excinfo.value.code == 2
    assert not (tmp_path / "o.json").exists()


@pytest.mark.skip(reason="Smoke test requires the live Hardcover API; enable manually.")
def test_run_prompts_live_smoke_does_not_crash():
    """
    Smoke test: run the CLI end-to-end for the account owning HARDCOVER_API_KEY.
    """
    run_prompts.main([])
