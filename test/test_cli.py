from decimal import Decimal

from roc.main import main


def test_cli_lists_wallets_and_transfers(app, seeded, capsys):
    other = app.wallets.create_wallet(seeded["loc"], "bank", "SRD", 0)

    assert main(["transfer", str(seeded["srd"]), str(other), "25"], app=app) == 0
    assert app.wallets.get_wallet(other).balance == Decimal("25")

    assert main(["wallets"], app=app) == 0
    out = capsys.readouterr().out
    assert "Paramaribo" in out
    assert "Total USD 100" in out


def test_cli_reports_errors_with_exit_status(app, seeded, capsys):
    assert main(["transfer", str(seeded["usd"]), str(seeded["srd"]), "5"], app=app) == 1
    assert "Error:" in capsys.readouterr().err


def test_cli_adjust_rate_and_reconcile(app, seeded, capsys):
    assert main(["adjust", str(seeded["usd"]), "correct", "80"], app=app) == 0
    assert app.wallets.get_wallet(seeded["usd"]).balance == Decimal("80")
    assert main(["rate"], app=app) == 0
    assert "1 USD = 40 SRD" in capsys.readouterr().out
    assert main(["reconcile"], app=app) == 0
    assert main(["orders", "--status", "pending"], app=app) == 0
