"""End-to-end tests for the HTTP API."""

import base64
import json
import time
from unittest.mock import patch

import jwt
import pytest
from sqlalchemy import select, update

from sealed.config import settings
from sealed.models.secret import Secret
from sealed.services.pow_service import PowChallenge, verify
from sealed.services.token_service import issue_creation_token
from tests.test_utils import (
    create_secret_via_api,
    fetch_challenge,
    generate_test_data,
    obtain_creation_token,
    secret_body,
    solve_challenge,
    utcnow,
)

IGNORED_HEADERS = {"x-correlation-id", "date"}


def comparable(response):
    """Status, body and headers, minus the ones that differ per request."""
    headers = tuple(
        sorted((k.lower(), v) for k, v in response.headers.items() if k.lower() not in IGNORED_HEADERS)
    )
    return response.status_code, response.content, headers


def post_secret(client, token, body):
    return client.post("/api/v1/secrets", json=body, headers={"Authorization": f"Bearer {token}"})


class TestToken:
    """Tests for the two-step /token exchange."""

    def test_challenge_shape(self, client, fast_pow):
        challenge = fetch_challenge(client)

        assert challenge["difficulty"] == fast_pow
        assert challenge["prefix"] == settings.pow_prefix
        assert challenge["algorithm"] == "sha256"
        assert len(challenge["nonce"]) == 32
        assert challenge["expiresAt"] > time.time()
        assert challenge["stamp"]

    def test_redeem_returns_token(self, client):
        challenge = fetch_challenge(client)
        response = client.post(
            "/api/v1/token",
            json={"challenge": challenge, "solution": solve_challenge(challenge)},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token"]
        assert time.time() < data["expiresAt"] <= time.time() + settings.token_ttl_seconds + 1

    def test_wrong_solution(self, client):
        challenge = fetch_challenge(client)
        pow_challenge = PowChallenge(
            prefix=challenge["prefix"], nonce=challenge["nonce"], difficulty=challenge["difficulty"]
        )
        wrong = solve_challenge(challenge) + 1
        while verify(pow_challenge, wrong):
            wrong += 1

        response = client.post("/api/v1/token", json={"challenge": challenge, "solution": wrong})

        assert response.status_code == 403
        assert response.json() == {"error": "invalid_pow"}

    @pytest.mark.parametrize("solution", [None, "abc", -1, 1.5, "0x1", {"n": 1}])
    def test_malformed_solution_is_same_403(self, client, solution):
        challenge = fetch_challenge(client)
        response = client.post("/api/v1/token", json={"challenge": challenge, "solution": solution})

        assert response.status_code == 403
        assert response.json() == {"error": "invalid_pow"}

    def test_tampered_challenge_is_same_403(self, client):
        challenge = fetch_challenge(client)
        tampered = dict(challenge, difficulty=0)

        response = client.post("/api/v1/token", json={"challenge": tampered, "solution": 0})

        assert response.status_code == 403
        assert response.json() == {"error": "invalid_pow"}

    def test_all_rejections_identical(self, client):
        first = fetch_challenge(client)
        second = fetch_challenge(client)

        responses = [
            client.post("/api/v1/token", json={"challenge": first, "solution": "nope"}),
            client.post("/api/v1/token", json={"challenge": dict(first, nonce="x"), "solution": 0}),
            client.post(
                "/api/v1/token",
                json={"challenge": dict(second, stamp=first["stamp"]), "solution": solve_challenge(second)},
            ),
        ]

        assert len({comparable(r) for r in responses}) == 1

    def test_oversized_integer_solution_is_same_403(self, client):
        challenge = fetch_challenge(client)
        # Larger than the interpreter's int-to-str limit; written by hand
        body = '{"challenge": %s, "solution": %s}' % (json.dumps(challenge), "9" * 5000)

        response = client.post("/api/v1/token", content=body, headers={"Content-Type": "application/json"})

        assert response.status_code == 403
        assert response.json() == {"error": "invalid_pow"}

    @pytest.mark.parametrize(
        "body",
        ["not json", "null", "[]", '{"solution": 1}', '{"challenge": {"nonce": "x"}, "solution": 1}'],
    )
    def test_unparseable_body_is_same_403(self, client, body):
        response = client.post("/api/v1/token", content=body, headers={"Content-Type": "application/json"})

        assert response.status_code == 403
        assert response.json() == {"error": "invalid_pow"}


class TestCreateSecret:
    def test_create_response(self, client):
        _, created = create_secret_via_api(client, ttl=900)

        assert len(created["id"]) == 22
        assert len(created["burnToken"]) == 32
        assert created["expiresAt"]

    def test_token_reuse_within_ttl(self, client):
        token = obtain_creation_token(client)

        for _ in range(2):
            response = post_secret(client, token, secret_body(generate_test_data()))
            assert response.status_code == 201

    def test_missing_authorization(self, client):
        response = client.post("/api/v1/secrets", json=secret_body(generate_test_data()))

        assert response.status_code == 401
        assert response.json() == {"error": "invalid_token"}

    def test_non_bearer_scheme(self, client):
        token = obtain_creation_token(client)
        response = client.post(
            "/api/v1/secrets",
            json=secret_body(generate_test_data()),
            headers={"Authorization": f"Basic {token}"},
        )

        assert response.status_code == 401

    def test_forged_token(self, client):
        now = int(time.time())
        forged = jwt.encode(
            {"jti": "j", "iat": now, "exp": now + 60, "op": "create", "nonce": "n"},
            "guessed-key",
            algorithm="HS256",
        )
        response = post_secret(client, forged, secret_body(generate_test_data()))

        assert response.status_code == 401
        assert response.json() == {"error": "invalid_token"}

    def test_expired_token(self, client):
        past = time.time() - settings.token_ttl_seconds - 60
        with patch("sealed.services.token_service.time.time", return_value=past):
            expired = issue_creation_token("n").token

        response = post_secret(client, expired, secret_body(generate_test_data()))

        assert response.status_code == 401
        assert response.json() == {"error": "invalid_token"}

    def test_challenge_stamp_is_not_a_token(self, client):
        stamp = fetch_challenge(client)["stamp"]
        response = post_secret(client, stamp, secret_body(generate_test_data()))

        assert response.status_code == 401

    def test_token_errors_identical(self, client):
        past = time.time() - settings.token_ttl_seconds - 60
        with patch("sealed.services.token_service.time.time", return_value=past):
            expired = issue_creation_token("n").token
        body = secret_body(generate_test_data())

        responses = [
            client.post("/api/v1/secrets", json=body),
            post_secret(client, "garbage", body),
            post_secret(client, expired, body),
        ]

        assert len({comparable(r) for r in responses}) == 1

    @pytest.mark.parametrize("body", [{}, {"ciphertext": "not base64!"}, secret_body(generate_test_data(), ttl=1)])
    def test_token_checked_before_body(self, client, body):
        response = client.post("/api/v1/secrets", json=body)

        assert response.status_code == 401
        assert response.json() == {"error": "invalid_token"}


class TestValidation:
    @pytest.fixture
    def token(self, client):
        return obtain_creation_token(client)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"iv": base64.b64encode(b"\x00" * 11).decode()},
            {"iv": base64.b64encode(b"\x00" * 16).decode()},
            {"authTag": base64.b64encode(b"\x00" * 12).decode()},
            {"ciphertext": ""},
            {"ciphertext": "not base64!"},
            {"ciphertext": "YWJj ZA=="},
            {"ttl": 899},
            {"ttl": 7_776_001},
            {"maxViews": 0},
            {"maxViews": 6},
        ],
    )
    def test_invalid_body_rejected(self, client, token, overrides):
        response = post_secret(client, token, secret_body(generate_test_data(), **overrides))
        assert response.status_code == 422

    def test_ciphertext_too_large(self, client, token):
        oversize = generate_test_data(size=settings.max_ciphertext_size + 1)
        response = post_secret(client, token, secret_body(oversize))
        assert response.status_code == 422

    def test_ciphertext_at_limit(self, client, token):
        at_limit = generate_test_data(size=settings.max_ciphertext_size)
        response = post_secret(client, token, secret_body(at_limit))
        assert response.status_code == 201

    @pytest.mark.parametrize("ttl", [900, 86_400, 7_776_000])
    def test_ttl_bounds_inclusive(self, client, token, ttl):
        response = post_secret(client, token, secret_body(generate_test_data(), ttl=ttl))
        assert response.status_code == 201

    def test_default_ttl(self, client, token, db_session):
        response = post_secret(client, token, secret_body(generate_test_data()))
        secret = db_session.execute(select(Secret).where(Secret.id == response.json()["id"])).scalar_one()

        lifetime = (secret.expires_at - secret.created_at).total_seconds()
        assert lifetime == pytest.approx(settings.default_ttl_seconds, abs=2)


class TestRetrieveSecret:
    def test_single_view(self, client):
        test_data, created = create_secret_via_api(client)

        response = client.get(f"/api/v1/secrets/{created['id']}")
        assert response.status_code == 200
        data = response.json()
        assert base64.b64decode(data["ciphertext"]) == test_data["ciphertext_bytes"]
        assert base64.b64decode(data["iv"]) == test_data["iv_bytes"]
        assert base64.b64decode(data["authTag"]) == test_data["auth_tag_bytes"]
        assert data["passphraseProtected"] is False

        again = client.get(f"/api/v1/secrets/{created['id']}")
        assert again.status_code == 404
        assert again.json() == {"error": "not_available"}

    def test_max_views(self, client):
        _, created = create_secret_via_api(client, maxViews=3)

        statuses = [client.get(f"/api/v1/secrets/{created['id']}").status_code for _ in range(4)]
        assert statuses == [200, 200, 200, 404]

    def test_passphrase_flag_round_trips(self, client):
        _, created = create_secret_via_api(client, passphraseProtected=True)

        data = client.get(f"/api/v1/secrets/{created['id']}").json()
        assert data["passphraseProtected"] is True

    def test_expired_is_not_found(self, client, db_session):
        _, created = create_secret_via_api(client)
        db_session.execute(update(Secret).where(Secret.id == created["id"]).values(expires_at=utcnow()))
        db_session.commit()

        response = client.get(f"/api/v1/secrets/{created['id']}")
        assert response.status_code == 404
        assert response.json() == {"error": "not_available"}

    def test_not_found_responses_identical(self, client, db_session):
        _, consumed = create_secret_via_api(client)
        client.get(f"/api/v1/secrets/{consumed['id']}")

        _, burned = create_secret_via_api(client)
        client.delete(f"/api/v1/secrets/{burned['id']}", headers={"X-Burn-Token": burned["burnToken"]})

        _, expired = create_secret_via_api(client)
        db_session.execute(update(Secret).where(Secret.id == expired["id"]).values(expires_at=utcnow()))
        db_session.commit()

        responses = [
            client.get(f"/api/v1/secrets/{consumed['id']}"),
            client.get(f"/api/v1/secrets/{burned['id']}"),
            client.get(f"/api/v1/secrets/{expired['id']}"),
            client.get("/api/v1/secrets/doesnotexist0000000000"),
            client.get("/api/v1/secrets/" + "x" * 500),
            client.get("/api/v1/secrets/a%2Fb"),
            client.get("/api/v1/secrets/a/b"),
            client.get("/api/v1/secrets/"),
        ]

        assert len({comparable(r) for r in responses}) == 1
        assert responses[0].status_code == 404


class TestBurnSecret:
    def test_burn_then_retrieve(self, client):
        _, created = create_secret_via_api(client)

        response = client.delete(
            f"/api/v1/secrets/{created['id']}", headers={"X-Burn-Token": created["burnToken"]}
        )
        assert response.status_code == 204
        assert response.content == b""

        assert client.get(f"/api/v1/secrets/{created['id']}").status_code == 404

    def test_wrong_token_keeps_secret(self, client):
        _, created = create_secret_via_api(client)

        response = client.delete(f"/api/v1/secrets/{created['id']}", headers={"X-Burn-Token": "wrong"})
        assert response.status_code == 204

        assert client.get(f"/api/v1/secrets/{created['id']}").status_code == 200

    def test_burn_responses_identical(self, client):
        _, live = create_secret_via_api(client)
        _, other = create_secret_via_api(client)
        _, consumed = create_secret_via_api(client)
        client.get(f"/api/v1/secrets/{consumed['id']}")

        responses = [
            client.delete(f"/api/v1/secrets/{live['id']}", headers={"X-Burn-Token": live["burnToken"]}),
            client.delete(f"/api/v1/secrets/{other['id']}", headers={"X-Burn-Token": "wrong"}),
            client.delete(f"/api/v1/secrets/{other['id']}"),
            client.delete(
                f"/api/v1/secrets/{consumed['id']}", headers={"X-Burn-Token": consumed["burnToken"]}
            ),
            client.delete("/api/v1/secrets/doesnotexist0000000000", headers={"X-Burn-Token": "x"}),
            client.delete("/api/v1/secrets/a%2Fb", headers={"X-Burn-Token": "x"}),
            client.delete("/api/v1/secrets/a/b", headers={"X-Burn-Token": "x"}),
            client.delete("/api/v1/secrets/", headers={"X-Burn-Token": "x"}),
        ]

        assert len({comparable(r) for r in responses}) == 1
        assert responses[0].status_code == 204

    def test_burn_is_padded_to_latency_floor(self, client):
        started = time.perf_counter()
        client.delete("/api/v1/secrets/doesnotexist0000000000", headers={"X-Burn-Token": "x"})
        elapsed_ms = (time.perf_counter() - started) * 1000

        assert elapsed_ms >= settings.burn_response_floor_ms


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
