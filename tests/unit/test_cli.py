import json
import sys
from unittest.mock import MagicMock, patch

import pytest

from insurehub import cli
from insurehub.errors import NotFound
from insurehub.services.renewal.sweeper import SweepResult


def _run(argv):
    with patch.object(sys, "argv", ["insurehub", *argv]):
        cli.main()


@pytest.mark.unit
def test_renewals_command_prints_counts(capsys):
    session = MagicMock()
    with patch("insurehub.cli.get_session", return_value=iter([session])), \
            patch("insurehub.cli.RenewalSweeper") as sweeper_cls:
        sweeper_cls.return_value.run.return_value = SweepResult(reminded=2, due=1)
        _run(["renewals", "--date", "2024-06-15"])

    assert json.loads(capsys.readouterr().out) == {"reminded": 2, "due": 1, "grace_reminded": 0, "expired": 0}
    run_kwargs = sweeper_cls.return_value.run.call_args.kwargs
    assert str(run_kwargs["today"]) == "2024-06-15"
    session.close.assert_called_once()


@pytest.mark.unit
def test_quote_command_unknown_policy_exits():
    session = MagicMock()
    with patch("insurehub.cli.get_session", return_value=iter([session])), \
            patch("insurehub.cli.get_policy", side_effect=NotFound("Policy 1 not found")):
        with pytest.raises(SystemExit) as excinfo:
            _run(["quote", "--policy-id", "1"])
    assert excinfo.value.code == 1
