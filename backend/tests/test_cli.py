"""
Flask CLI command tests.
"""

from livemart.models import User
from livemart.services import inventory_service


def test_create_admin(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "users", "create-admin",
        "--email", "Root@LiveMart.local",
        "--phone", "+919700000001",
        "--name", "Root Admin",
        "--password", "Password123!",
    ])

    assert result.exit_code == 0, result.output
    assert "PASS Created admin" in result.output
    admin = db_session.query(User).filter_by(email="root@livemart.local").one()
    assert admin.role == "ADMIN"
    assert admin.is_verified is True


def test_create_admin_weak_password(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "users", "create-admin",
        "--email", "root@livemart.local",
        "--phone", "+919700000001",
        "--name", "Root Admin",
        "--password", "weak",
    ])

    assert result.exit_code == 1
    assert "Password validation failed" in result.output
    assert db_session.query(User).count() == 0


def test_list_users(app, customer, retailer):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["users", "list"])
    assert result.exit_code == 0
    assert "customer@example.com" in result.output
    assert "retailer@example.com" in result.output

    result = runner.invoke(args=["users", "list", "--role", "retailer"])
    assert "customer@example.com" not in result.output


def test_deactivate_user(app, customer, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["users", "deactivate", "--email", "customer@example.com"])
    assert result.exit_code == 0, result.output
    db_session.expire_all()
    assert db_session.get(User, customer.id).is_active is False

    result = runner.invoke(args=["users", "deactivate", "--email", "customer@example.com"])
    assert result.exit_code == 1

    result = runner.invoke(args=["users", "deactivate", "--email", "ghost@example.com"])
    assert result.exit_code == 1


def test_low_stock(app, inventory, retailer):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["inventory", "low-stock", "--owner-id", str(retailer.id)])
    assert "No low-stock records." in result.output

    inventory_service.update_stock(inventory.id, -18)
    result = runner.invoke(args=["inventory", "low-stock", "--owner-id", str(retailer.id)])
    assert "Basmati Rice" in result.output
    assert "LOW_STOCK" in result.output


def test_award_points(app, customer, retailer, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["users", "award-points", "--email", "customer@example.com", "--points", "40"])
    assert result.exit_code == 0, result.output
    assert "now has 40 loyalty points" in result.output

    result = runner.invoke(args=["users", "award-points", "--email", "retailer@example.com", "--points", "40"])
    assert result.exit_code == 1

    result = runner.invoke(args=["users", "award-points", "--email", "customer@example.com", "--points", "0"])
    assert result.exit_code == 1
