"""Bootstrap and user CLI commands."""

from lsms.models import Category, ExpenseCategory, Product, Setting, StockMovement, User


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "init", "--owner-email", "boss@lsms.local", "--owner-password", "Owner123!"])
    assert result.exit_code == 0, result.output
    assert "PASS Created Owner" in result.output

    result = runner.invoke(args=["system", "init", "--owner-password", "Owner123!"])
    assert result.exit_code == 0, result.output
    assert "already exists" in result.output

    assert db_session.query(User).filter_by(role="OWNER").count() == 1
    assert db_session.query(Category).count() == 8
    assert db_session.query(ExpenseCategory).count() == 7
    assert db_session.query(Setting).filter_by(key="shop_name").count() == 1


def test_system_init_rejects_weak_password(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "init", "--owner-password", "weak"])
    assert "FAIL Password validation failed" in result.output
    assert db_session.query(User).count() == 0


def test_seed_demo_books_opening_stock(app, db_session):
    runner = app.test_cli_runner()
    runner.invoke(args=["system", "init", "--owner-password", "Owner123!"])

    result = runner.invoke(args=["system", "seed-demo"])
    assert result.exit_code == 0, result.output

    assert db_session.query(User).filter_by(role="SELLER").count() == 2
    product = db_session.query(Product).filter_by(sku="JWB-750").one()
    assert product.current_stock == 24
    movement = db_session.query(StockMovement).filter_by(product_id=product.id).one()
    assert movement.type == "PURCHASE"
    assert movement.quantity == 24


def test_users_create_and_list(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "users", "create",
        "--name", "Mary Wanjiku",
        "--email", "mary@lsms.local",
        "--password", "Seller123!",
        "--role", "SELLER",
    ])
    assert result.exit_code == 0, result.output
    assert "PASS Created user" in result.output

    result = runner.invoke(args=["users", "list"])
    assert "mary@lsms.local" in result.output
