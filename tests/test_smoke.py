from flask.cli import routes_command

from woapp import create_app


def _make_app():
    return create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})


def test_app_factory_smoke():
    app = _make_app()
    assert app is not None
    assert app.config["DATABASE_AVAILABLE"] is True


def test_blueprints_registered():
    app = _make_app()
    for name in ["errors", "work_orders", "ncr"]:
        assert name in app.blueprints


def test_health_endpoint():
    app = _make_app()
    client = app.test_client()

    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_stage_view_empty_database():
    app = _make_app()
    client = app.test_client()

    response = client.get("/work-orders/stage-view")
    assert response.status_code == 200
    assert response.get_json() == {"work_orders": []}


def test_readiness_settings_loaded():
    app = _make_app()
    assert app.config["NCR_REPEAT_WINDOW_DAYS"] == 90
    assert app.config["EXTERNAL_OVERDUE_GRACE_DAYS"] == 0


def test_flask_routes_listed():
    app = _make_app()
    runner = app.test_cli_runner()
    result = runner.invoke(routes_command)
    assert result.exit_code == 0
