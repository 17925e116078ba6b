import argparse
import json
from unittest.mock import patch

import pytest

from cloudtrack_agent import main
from cloudtrack_agent.db import init_db, set_meta
from cloudtrack_agent.sweep import LAST_SWEEP_KEY, SweepReport

from tests.factories import TODAY


@patch("cloudtrack_agent.main.today_in", return_value=TODAY)
@patch("cloudtrack_agent.main.run_sweep")
@patch("cloudtrack_agent.main.load_config")
def test_run_once_prints_report(mock_load_config, mock_run_sweep, mock_today, app_config, capsys):
    mock_load_config.return_value = app_config
    mock_run_sweep.return_value = SweepReport(processed=2)

    main.run_once(argparse.Namespace(if_due=False))

    output = json.loads(capsys.readouterr().out)
    assert output == {"success": True, "processed": 2, "notifications_sent": 0, "details": []}
    assert mock_run_sweep.call_args[1]["today"] == TODAY


@patch("cloudtrack_agent.main.today_in", return_value=TODAY)
@patch("cloudtrack_agent.main.run_sweep")
@patch("cloudtrack_agent.main.load_config")
def test_if_due_skips_when_already_swept(mock_load_config, mock_run_sweep, mock_today, app_config):
    mock_load_config.return_value = app_config
    conn = init_db(app_config.db_path)
    set_meta(conn, LAST_SWEEP_KEY, "2024-06-10")
    conn.close()

    main.run_once(argparse.Namespace(if_due=True))

    mock_run_sweep.assert_not_called()


@patch("cloudtrack_agent.main.today_in", return_value=TODAY)
@patch("cloudtrack_agent.main.run_sweep")
@patch("cloudtrack_agent.main.load_config")
def test_if_due_runs_on_new_day(mock_load_config, mock_run_sweep, mock_today, app_config):
    mock_load_config.return_value = app_config
    mock_run_sweep.return_value = SweepReport()
    conn = init_db(app_config.db_path)
    set_meta(conn, LAST_SWEEP_KEY, "2024-06-09")
    conn.close()

    main.run_once(argparse.Namespace(if_due=True))

    mock_run_sweep.assert_called_once()


@patch("cloudtrack_agent.main.load_config", side_effect=ValueError("OVERDUE_REPEAT_DAYS must be positive"))
def test_bad_configuration_exits(mock_load_config):
    with pytest.raises(SystemExit) as exc:
        main.run_once(argparse.Namespace(if_due=False))
    assert exc.value.code == 1
