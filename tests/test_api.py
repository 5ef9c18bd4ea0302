import pytest
from fastapi.testclient import TestClient

from afyaclaims.core.states import Role
from afyaclaims.main import create_app


@pytest.fixture
def client(services):
    services.directory.register("admin@afya.test", "admin-pass", Role.ADMIN, "Amina Admin")
    with TestClient(create_app(services=services)) as test_client:
        yield test_client


def login(client, email, password):
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return response.json()["data"]


def auth(session):
    return {"Authorization": f"Bearer {session['accessToken']}"}


@pytest.fixture
def admin_session(client):
    return login(client, "admin@afya.test", "admin-pass")


@pytest.fixture
def patient_session(client):
    response = client.post(
        "/auth/register",
        json={"email": "wanjiku@afya.test", "password": "patient-pass", "fullName": "Wanjiku Kamau"},
    )
    assert response.status_code == 201
    return login(client, "wanjiku@afya.test", "patient-pass")


@pytest.fixture
def kati_policy(client, patient_session):
    response = client.post("/insurance", json={"tier": "kati"}, headers=auth(patient_session))
    assert response.status_code == 201
    return response.json()["data"]


def submit(client, session, policy, amount=25000):
    return client.post(
        "/claims",
        json={
            "policyId": policy["id"],
            "facilityId": "facility-aga-khan",
            "claimAmount": amount,
            "servicesRendered": ["consultation", "x-ray"],
        },
        headers=auth(session),
    )


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_login_returns_session_envelope(client, admin_session):
    assert admin_session["identity"]["role"] == "admin"
    assert admin_session["refreshToken"]

    me = client.get("/auth/me", headers=auth(admin_session))
    assert me.json() == {"success": True, "data": admin_session["identity"]}


def test_bad_credentials_are_401(client):
    response = client.post("/auth/login", json={"email": "admin@afya.test", "password": "nope"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid email or password"}


def test_missing_bearer_is_401(client):
    response = client.get("/claims")

    assert response.status_code == 401
    assert "error" in response.json()


def test_admin_cannot_self_register(client):
    response = client.post("/auth/register", json={"email": "x@afya.test", "password": "secret1", "role": "admin"})

    assert response.status_code == 403


def test_malformed_body_is_400(client, patient_session):
    response = client.post("/insurance", json={"tier": "platinum"}, headers=auth(patient_session))

    assert response.status_code == 400
    assert "tier" in response.json()["error"]


def test_refresh_rotates_tokens(client, patient_session):
    response = client.post("/auth/refresh", json={"refreshToken": patient_session["refreshToken"]})

    assert response.status_code == 200
    assert response.json()["data"]["refreshToken"] != patient_session["refreshToken"]
    replay = client.post("/auth/refresh", json={"refreshToken": patient_session["refreshToken"]})
    assert replay.status_code == 401


def test_logout_revokes_refresh_token(client, patient_session):
    response = client.post("/auth/logout", json={"refreshToken": patient_session["refreshToken"]})

    assert response.status_code == 200
    replay = client.post("/auth/refresh", json={"refreshToken": patient_session["refreshToken"]})
    assert replay.status_code == 401


def test_enroll_and_lookup_policy(client, patient_session, kati_policy):
    assert kati_policy["coverageLimit"] == 150000
    assert kati_policy["status"] == "active"

    response = client.get(f"/insurance/user/{patient_session['identity']['id']}", headers=auth(patient_session))
    assert response.json()["data"]["id"] == kati_policy["id"]

    again = client.post("/insurance", json={"tier": "juu"}, headers=auth(patient_session))
    assert again.status_code == 409


def test_claim_over_coverage_is_400(client, patient_session, kati_policy):
    response = submit(client, patient_session, kati_policy, amount=200000)

    assert response.status_code == 400
    assert "coverage limit" in response.json()["error"]


def test_non_finite_claim_amount_is_400(client, patient_session, kati_policy):
    body = (
        f'{{"policyId": "{kati_policy["id"]}", "facilityId": "facility-aga-khan", '
        '"claimAmount": NaN, "servicesRendered": ["consultation"]}'
    )

    response = client.post(
        "/claims",
        content=body,
        headers={**auth(patient_session), "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert "claim amount" in response.json()["error"].lower()


def test_claim_lifecycle(client, admin_session, patient_session, kati_policy):
    claim = submit(client, patient_session, kati_policy).json()["data"]
    assert claim["status"] == "pending"

    pending = client.get("/claims", params={"status": "pending"}, headers=auth(admin_session)).json()["data"]
    assert [c["id"] for c in pending] == [claim["id"]]

    denied = client.patch(f"/claims/{claim['id']}/process", json={"status": "approved"}, headers=auth(patient_session))
    assert denied.status_code == 403

    approved = client.patch(f"/claims/{claim['id']}/process", json={"status": "approved"}, headers=auth(admin_session))
    assert approved.status_code == 200
    assert approved.json()["data"]["transactionHash"].startswith("0x")

    again = client.patch(f"/claims/{claim['id']}/process", json={"status": "rejected", "rejectionReason": "late"},
                         headers=auth(admin_session))
    assert again.status_code == 409

    history = client.get(f"/claims/patient/{patient_session['identity']['id']}", headers=auth(patient_session))
    assert history.json()["data"][0]["status"] == "approved"


def test_patient_cannot_list_all_claims(client, patient_session):
    response = client.get("/claims", headers=auth(patient_session))

    assert response.status_code == 403


def test_policy_status_and_dependents(client, admin_session, patient_session, kati_policy):
    lapsed = client.patch(f"/insurance/{kati_policy['id']}/status", json={"status": "lapsed"}, headers=auth(admin_session))
    assert lapsed.json()["data"]["status"] == "lapsed"

    dependents = client.put(
        f"/insurance/{kati_policy['id']}/dependents",
        json={"dependents": [{"name": "Baraka", "relationship": "child"}]},
        headers=auth(patient_session),
    )
    assert dependents.status_code == 200
    assert dependents.json()["data"]["dependents"] == [{"name": "Baraka", "relationship": "child"}]

    missing = client.patch("/insurance/nope/status", json={"status": "lapsed"}, headers=auth(admin_session))
    assert missing.status_code == 404


def test_audit_logs_are_admin_only_and_paged(client, admin_session, patient_session, kati_policy):
    submit(client, patient_session, kati_policy)

    denied = client.get("/audit-logs", headers=auth(patient_session))
    assert denied.status_code == 403

    response = client.get(
        "/audit-logs",
        params={"userId": patient_session["identity"]["id"], "limit": 1},
        headers=auth(admin_session),
    )
    body = response.json()
    assert body["data"][0]["action"] == "claim_submitted"
    assert body["data"][0]["userAgent"] == "testclient"
    assert body["pagination"]["totalItems"] == 2


def test_notification_inbox_flow(client, admin_session, patient_session):
    sent = client.post(
        "/notifications/send",
        json={"title": "Premium due", "message": "Pay by Friday", "roles": ["patient"], "type": "warning"},
        headers=auth(admin_session),
    )
    assert sent.json()["sentCount"] == 1

    user_id = patient_session["identity"]["id"]
    inbox = client.get(f"/users/{user_id}/notifications", headers=auth(patient_session)).json()
    assert inbox["unreadCount"] == 1
    notification_id = inbox["data"][0]["id"]

    read = client.patch(f"/notifications/{notification_id}/read", headers=auth(patient_session))
    assert read.json()["data"]["isRead"] is True

    client.patch(f"/notifications/{notification_id}/unread", headers=auth(patient_session))
    client.post("/notifications/read-all", json={}, headers=auth(patient_session))
    inbox = client.get(f"/users/{user_id}/notifications", headers=auth(patient_session)).json()
    assert inbox["unreadCount"] == 0

    for _ in range(2):
        deleted = client.delete(f"/notifications/{notification_id}", headers=auth(patient_session))
        assert deleted.status_code == 200


def test_send_without_recipients_is_404(client, admin_session):
    response = client.post(
        "/notifications/send",
        json={"title": "Hello", "message": "Anyone?", "roles": ["pharmacy"]},
        headers=auth(admin_session),
    )

    assert response.status_code == 404
    assert response.json() == {"error": "No users found matching the criteria"}


def test_patient_cannot_read_another_inbox(client, admin_session, patient_session):
    admin_id = admin_session["identity"]["id"]

    response = client.get(f"/users/{admin_id}/notifications", headers=auth(patient_session))

    assert response.status_code == 403
