from datetime import timedelta

from auth import create_access_token


def login(client, email, password):
    return client.post("/auth/login", data={"username": email, "password": password})


def test_login_and_me(client, register):
    register(password="secret123")

    response = login(client, "donor@example.com", "secret123")
    assert response.status_code == 200
    token = response.json()["access_token"]
    assert response.json()["token_type"] == "bearer"

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "donor@example.com"
    assert "password" not in me.json()


def test_login_wrong_password(client, register):
    register(password="secret123")
    response = login(client, "donor@example.com", "wrong-password")
    assert response.status_code == 400
    assert response.json() == {"message": "Invalid credentials"}


def test_login_without_stored_password(client, register):
    register()
    assert login(client, "donor@example.com", "anything").status_code == 400


def test_blocked_user_cannot_login(client, register):
    user_id = register(password="secret123")["insertedId"]
    client.patch(f"/users/block/{user_id}")

    assert login(client, "donor@example.com", "secret123").status_code == 403


def test_me_rejects_bad_and_expired_tokens(client, register):
    register()
    bad = client.get("/auth/me", headers={"Authorization": "Bearer garbage"})
    assert bad.status_code == 401

    expired = create_access_token({"sub": "donor@example.com"}, timedelta(minutes=-5))
    response = client.get("/auth/me", headers={"Authorization": f"Bearer {expired}"})
    assert response.status_code == 401


def test_profile_password_change_is_rehashed(client, register):
    register(password="secret123")
    client.patch("/users/donor@example.com", json={"password": "newsecret456"})

    assert login(client, "donor@example.com", "secret123").status_code == 400
    assert login(client, "donor@example.com", "newsecret456").status_code == 200
