"""
CLI command tests (flask system / users / inventory groups).
"""

from station.models import User


class TestSystemInit:

    def test_creates_first_admin_once(self, app, db_session):
        runner = app.test_cli_runner()
        args = ["system", "init", "--admin-email", "boss@station.test", "--admin-password", "secret1"]

        result = runner.invoke(args=args)
        assert result.exit_code == 0, result.output
        assert "Created admin: boss@station.test" in result.output

        result = runner.invoke(args=args)
        assert result.exit_code == 0
        assert "Using existing admin" in result.output
        assert db_session.query(User).filter_by(role="admin").count() == 1

    def test_weak_password_fails(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "init", "--admin-password", "123"])
        assert result.exit_code != 0
        assert db_session.query(User).count() == 0


class TestUsersCommands:

    def test_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create",
            "--name", "Till Operator",
            "--email", "till@station.test",
            "--password", "secret1",
            "--role", "cashier",
        ])
        assert result.exit_code == 0, result.output

        result = runner.invoke(args=["users", "list"])
        assert "till@station.test" in result.output
        assert "cashier" in result.output

    def test_duplicate_email(self, app, staff_user):
        result = app.test_cli_runner().invoke(args=[
            "users", "create",
            "--name", "Again",
            "--email", "staff@station.test",
            "--password", "secret1",
            "--role", "staff",
        ])
        assert result.exit_code != 0
        assert "already exists" in result.output


class TestInventoryCommands:

    def test_low_stock(self, app, make_product):
        make_product(name="Spark Plug", quantity=1, category="part")
        make_product(name="Coolant", quantity=40, category="fluid")

        result = app.test_cli_runner().invoke(args=["inventory", "low-stock"])
        assert result.exit_code == 0
        assert "Spark Plug" in result.output
        assert "Coolant" not in result.output

    def test_nothing_low(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["inventory", "low-stock", "--category", "oil"])
        assert "No low-stock products" in result.output
