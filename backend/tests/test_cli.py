"""
CLI command tests (flask system / ledger / shifts groups).
"""

from boutique.extensions import db
from boutique.models import Article, Variant


def test_seed_then_verify(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "seed"])
    assert result.exit_code == 0, result.output
    assert db.session.query(Article).count() == 3

    # Seeding twice skips existing articles
    result = runner.invoke(args=["system", "seed"])
    assert "SKIP NM-W2-001" in result.output

    result = runner.invoke(args=["ledger", "verify"])
    assert result.exit_code == 0
    assert "PASS" in result.output


def test_verify_reports_drift(app, dress):
    variant = db.session.query(Variant).filter_by(article_id="SKU-1", size_internal="M").one()
    variant.warehouse_qty = 1
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["ledger", "verify"])
    assert result.exit_code != 0
    assert "SKU-1-M" in result.output


def test_movements_listing(app, dress):
    result = app.test_cli_runner().invoke(args=["ledger", "movements", "--article", "SKU-1", "--size", "M"])
    assert result.exit_code == 0
    assert result.output.count("Inward") == 2


def test_shift_history_empty(app, db_session):
    result = app.test_cli_runner().invoke(args=["shifts", "history"])
    assert result.exit_code == 0
    assert "No shift records found." in result.output
