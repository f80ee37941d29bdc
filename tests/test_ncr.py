import os
import sys
from datetime import date, datetime

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from woapp import create_app
from woapp.extensions import db
from woapp.models import NCR, AuditLog
from woapp.readiness import NCRTransitionError
from woapp.services import ncr_service


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})
    with app.app_context():
        db.create_all()
        db.session.expire_on_commit = False
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _ncr(number="NCR-001", **fields):
    ncr = NCR(ncr_number=number, **fields)
    db.session.add(ncr)
    db.session.commit()
    return ncr


FULL_FIELDS = {
    "disposition": "Rework",
    "root_cause": "Worn fixture",
    "corrective_action": "Replaced fixture",
    "preventive_action": "Added fixture to PM schedule",
}


def test_save_fields_advances_status(app):
    ncr = _ncr()

    ncr_service.save_fields(ncr, {"disposition": "Scrap"})
    assert ncr.status == "ACTION_IN_PROGRESS"

    ncr_service.save_fields(ncr, FULL_FIELDS)
    assert ncr.status == "EFFECTIVENESS_PENDING"


def test_save_fields_rejects_closed_ncr(app):
    ncr = _ncr(status="CLOSED")

    with pytest.raises(NCRTransitionError):
        ncr_service.save_fields(ncr, {"root_cause": "Late change"})


def test_close_writes_audit_entry(app):
    ncr = _ncr(
        effectiveness_check="No repeat in 30 days",
        effectiveness_verified=True,
        **FULL_FIELDS,
    )

    ncr_service.close(ncr, "qa.lead", roles=["Quality"])

    assert ncr.status == "CLOSED"
    assert ncr.closed_by == "qa.lead"
    assert AuditLog.query.filter_by(action="NCR_CLOSED", entity_id=ncr.id).count() == 1


def test_repeat_root_cause_report_uses_configured_window(app):
    _ncr("NCR-1", root_cause="Burr", raised_at=datetime(2024, 6, 25))
    _ncr("NCR-2", root_cause="Burr ", raised_at=datetime(2024, 5, 1))
    _ncr("NCR-3", root_cause="Mislabel", raised_at=datetime(2024, 6, 1))

    app.config["NCR_REPEAT_WINDOW_DAYS"] = 30
    short = ncr_service.repeat_root_cause_report(today=date(2024, 6, 30))
    app.config["NCR_REPEAT_WINDOW_DAYS"] = 90
    long = ncr_service.repeat_root_cause_report(today=date(2024, 6, 30))

    assert short["window_days"] == 30
    assert short["repeat_root_causes"] == []
    assert long["repeat_root_causes"] == [{"root_cause": "Burr", "count": 2}]
    assert long["repeat_ncr_rate"] == pytest.approx(33.33)


def test_ncr_detail_route(client, app):
    ncr = _ncr(disposition="Use as is")

    response = client.get(f"/ncrs/{ncr.id}")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["status_label"] == "Open"
    assert payload["missing_close_requirements"][0] == "Root Cause"


def test_ncr_unknown_returns_404(client):
    response = client.get("/ncrs/42")

    assert response.status_code == 404
    assert response.get_json()["error"] == "NCR not found."


def test_update_ncr_route(client, app):
    ncr = _ncr()

    response = client.post(f"/ncrs/{ncr.id}", json=FULL_FIELDS)

    assert response.status_code == 200
    assert response.get_json()["status"] == "EFFECTIVENESS_PENDING"


def test_close_route_rejects_missing_requirements(client, app):
    ncr = _ncr(**FULL_FIELDS)

    response = client.post(
        f"/ncrs/{ncr.id}/close", json={"actor": "qa.lead", "roles": ["quality"]}
    )

    assert response.status_code == 400
    payload = response.get_json()
    assert payload["missing"] == ["Effectiveness Check", "Effectiveness Verification"]


def test_close_route_requires_quality_role(client, app):
    ncr = _ncr(
        effectiveness_check="Verified",
        effectiveness_verified=True,
        **FULL_FIELDS,
    )

    response = client.post(f"/ncrs/{ncr.id}/close", json={"roles": "viewer"})

    assert response.status_code == 400
    assert "Quality" in response.get_json()["error"]


def test_close_route_success(client, app):
    ncr = _ncr(
        effectiveness_check="Verified",
        effectiveness_verified=True,
        **FULL_FIELDS,
    )

    response = client.post(
        f"/ncrs/{ncr.id}/close", json={"actor": "qa.lead", "roles": "quality,viewer"}
    )

    assert response.status_code == 200
    assert response.get_json()["status"] == "CLOSED"


@pytest.mark.parametrize(
    "body, message",
    [
        ({"actor": 5, "roles": ["quality"]}, "actor must be a string."),
        ({"actor": "qa.lead", "roles": [1]}, "roles must be a list of role names."),
        ({"actor": "qa.lead", "roles": {"quality": True}}, "roles must be a list of role names."),
        (["quality"], "Request body must be a JSON object."),
    ],
)
def test_close_route_rejects_malformed_body(client, app, body, message):
    ncr = _ncr(
        effectiveness_check="Verified",
        effectiveness_verified=True,
        **FULL_FIELDS,
    )

    response = client.post(f"/ncrs/{ncr.id}/close", json=body)

    assert response.status_code == 400
    assert response.get_json()["error"] == message
    assert AuditLog.query.filter_by(action="NCR_CLOSED").count() == 0


def test_update_ncr_route_rejects_non_object_body(client, app):
    ncr = _ncr()

    response = client.post(f"/ncrs/{ncr.id}", json=["root_cause"])

    assert response.status_code == 400
    assert response.get_json()["error"] == "Request body must be a JSON object."


def test_repeat_root_causes_route(client, app):
    _ncr("NCR-1", root_cause="Burr", raised_at=datetime(2024, 6, 25))
    _ncr("NCR-2", root_cause="Burr", raised_at=datetime(2024, 6, 1))

    response = client.get(
        "/ncrs/analytics/repeat-root-causes?today=2024-06-30&window_days=60"
    )

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["window_days"] == 60
    assert payload["repeat_root_causes"] == [{"root_cause": "Burr", "count": 2}]
    assert payload["repeat_ncr_rate"] == 50.0


def test_repeat_root_causes_route_validates_input(client):
    assert client.get("/ncrs/analytics/repeat-root-causes?window_days=0").status_code == 400
    assert client.get("/ncrs/analytics/repeat-root-causes?today=June").status_code == 400
