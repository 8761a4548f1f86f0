"""
HTTP surface of the OTP API: request validation, envelopes and status codes.
"""
from services import challenge_service as challenge_module


def generate(client, **body):
    return client.post("/api/otp/generate", json=body)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_generate_for_email(client, notifier):
    response = generate(client, email="user@example.com")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "OTP sent successfully"
    data = body["data"]
    assert data["challenge_id"]
    assert data["expires_at"]
    assert data["attempts_remaining"] == 3
    assert data["code"] == notifier.last_code


def test_generate_for_phone(client):
    response = generate(client, phone="+919876543210")
    assert response.status_code == 200
    assert response.json()["data"]["channel"] == "phone"


def test_generate_requires_exactly_one_target(client):
    assert generate(client).status_code == 422
    assert generate(client, email="user@example.com", phone="+919876543210").status_code == 422


def test_generate_rejects_malformed_targets(client):
    assert generate(client, email="not-an-email").status_code == 422
    assert generate(client, phone="9876543210").status_code == 422
    assert generate(client, phone="+12345").status_code == 422
    assert generate(client, phone="+1234567890123456").status_code == 422
    assert generate(client, phone="+١٢٣٤٥٦٧٨٩٠").status_code == 422


def test_non_ascii_code_never_spends_an_attempt(client):
    data = generate(client, email="user@example.com").json()["data"]

    response = client.post("/api/otp/verify", json={"challenge_id": data["challenge_id"], "code": "١٢٣٤٥٦"})
    assert response.status_code == 422

    wrong = "000000" if data["code"] != "000000" else "111111"
    rejected = client.post("/api/otp/verify", json={"challenge_id": data["challenge_id"], "code": wrong})
    assert rejected.json()["detail"]["attempts_remaining"] == 2


def test_validation_errors_use_error_detail(client):
    response = generate(client, email="not-an-email")
    assert response.json()["detail"]["error"] == "validation_error"
    assert response.json()["detail"]["message"]


def test_generate_reports_delivery_failure(client, notifier):
    notifier.fail = True
    response = generate(client, email="user@example.com")

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["delivery_failed"] is True
    assert body["message"] == body["data"]["warning"]


def test_generate_rate_limited(client):
    for _ in range(3):
        assert generate(client, email="user@example.com").status_code == 200

    response = generate(client, email="user@example.com")

    assert response.status_code == 429
    assert response.json()["detail"]["error"] == "rate_limited"


def test_code_hidden_in_production(client, db, notifier, clock):
    from main import app
    from services.challenge_service import ChallengeService, get_challenge_service
    from services.users_services import UserService

    app.dependency_overrides[get_challenge_service] = lambda: ChallengeService(
        db, notifier, UserService(db), clock=clock, diagnostic=False
    )
    response = generate(client, email="user@example.com")

    assert "code" not in response.json()["data"]


def test_verify_scenario(client, monkeypatch):
    monkeypatch.setattr(challenge_module, "generate_otp_code", lambda length=6: "123456")
    challenge_id = generate(client, email="user@example.com").json()["data"]["challenge_id"]

    wrong = client.post("/api/otp/verify", json={"challenge_id": challenge_id, "code": "654321"})
    assert wrong.status_code == 400
    assert wrong.json()["detail"] == {
        "error": "wrong_code",
        "message": "Invalid OTP code. 2 attempts remaining",
        "attempts_remaining": 2,
    }

    accepted = client.post("/api/otp/verify", json={"challenge_id": challenge_id, "code": "123456"})
    assert accepted.status_code == 200
    data = accepted.json()["data"]
    assert data["outcome"] == "accepted"
    assert data["identity_snapshot"]["target"] == "user@example.com"
    assert data["identity_snapshot"]["user_id"]


def test_verify_rejects_malformed_code(client):
    challenge_id = generate(client, email="user@example.com").json()["data"]["challenge_id"]

    for code in ("12345", "1234567", "12a456", "", "١٢٣٤٥٦", "１２３４５６"):
        response = client.post("/api/otp/verify", json={"challenge_id": challenge_id, "code": code})
        assert response.status_code == 422


def test_verify_expired(client, clock):
    data = generate(client, phone="+919876543210").json()["data"]
    clock.advance(minutes=6)

    response = client.post("/api/otp/verify", json={"challenge_id": data["challenge_id"], "code": data["code"]})

    assert response.status_code == 410
    assert response.json()["detail"]["error"] == "expired"


def test_verify_exhausted(client):
    data = generate(client, email="user@example.com").json()["data"]
    wrong = "000000" if data["code"] != "000000" else "111111"
    for _ in range(3):
        client.post("/api/otp/verify", json={"challenge_id": data["challenge_id"], "code": wrong})

    response = client.post("/api/otp/verify", json={"challenge_id": data["challenge_id"], "code": data["code"]})

    assert response.status_code == 429
    assert response.json()["detail"]["error"] == "exhausted"


def test_verify_unknown(client):
    response = client.post("/api/otp/verify", json={"challenge_id": "nope", "code": "123456"})
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "not_found"


def test_resend_flow(client):
    original = generate(client, email="user@example.com").json()["data"]

    response = client.post("/api/otp/resend", json={"challenge_id": original["challenge_id"]})
    assert response.status_code == 200
    assert response.json()["message"] == "OTP resent successfully"
    replacement = response.json()["data"]
    assert replacement["challenge_id"] != original["challenge_id"]

    stale = client.post("/api/otp/verify", json={"challenge_id": original["challenge_id"], "code": original["code"]})
    assert stale.status_code == 404

    fresh = client.post("/api/otp/verify", json={"challenge_id": replacement["challenge_id"], "code": replacement["code"]})
    assert fresh.status_code == 200


def test_resend_after_verified_conflicts(client):
    data = generate(client, email="user@example.com").json()["data"]
    client.post("/api/otp/verify", json={"challenge_id": data["challenge_id"], "code": data["code"]})

    response = client.post("/api/otp/resend", json={"challenge_id": data["challenge_id"]})

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "invalid_state"


def test_resend_unknown(client):
    response = client.post("/api/otp/resend", json={"challenge_id": "nope"})
    assert response.status_code == 404
