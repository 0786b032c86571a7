import pytest
from fastapi.testclient import TestClient

from egypto import main
from tests.helpers import auth, parse_sse, wait_for

PROMPT = "Where are the pyramids?"


def stats(client):
    return client.portal.call(main.chat_store.get_stats)


def titles(client, user):
    response = client.get("/chat/titles", headers=auth(user))
    assert response.status_code == 200
    return response.json()["data"]


# -----------------------------------------------------------------------------
# basic endpoints
# -----------------------------------------------------------------------------

def test_root_and_health(client):
    assert client.get("/").json()["message"] == "EgyptoAI API"
    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["providers"] == {"gemini": "native", "deepseek": "native"}
    assert health["chat_store"] == {"conversations": 0, "turns": 0}
    assert health["chat_service"] is True


# -----------------------------------------------------------------------------
# POST /chat/stream
# -----------------------------------------------------------------------------

def test_anonymous_stream_is_delivered_and_not_stored(client, providers):
    response = client.post("/chat/stream", json={"prompt": PROMPT, "model": "gemini"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert "x-chat-id" not in response.headers
    assert parse_sse(response.text) == [
        ("message", "Ahlan"),
        ("message", " ya "),
        ("message", "basha"),
        ("done", "END"),
    ]
    [messages] = providers[0].stream_calls
    assert messages[-1].content == PROMPT
    assert stats(client) == {"conversations": 0, "turns": 0}


def test_anonymous_chat_id_is_ignored(client, providers):
    response = client.post("/chat/stream", json={"prompt": PROMPT, "model": "gemini", "chatId": "whatever"})

    assert response.status_code == 200
    assert parse_sse(response.text)[-1] == ("done", "END")
    assert stats(client) == {"conversations": 0, "turns": 0}


def test_authenticated_stream_creates_conversation_and_turn(client, providers):
    providers[1].once_hangs = True

    response = client.post("/chat/stream", json={"prompt": PROMPT, "model": "deepseek"}, headers=auth("u1"))

    assert response.status_code == 200
    assert parse_sse(response.text)[-1] == ("done", "END")
    chat_id = response.headers["x-chat-id"]
    assert titles(client, "u1") == [{"id": chat_id, "title": PROMPT}]

    detail = client.get(f"/chat/{chat_id}", headers=auth("u1")).json()["data"]
    assert [(t["prompt"], t["reply"]) for t in detail["messages"]] == [(PROMPT, "Ahlan ya basha")]
    assert stats(client) == {"conversations": 1, "turns": 1}


def test_title_is_summarized_after_the_stream(client, providers):
    response = client.post("/chat/stream", json={"prompt": PROMPT, "model": "gemini"}, headers=auth("u1"))
    chat_id = response.headers["x-chat-id"]

    assert wait_for(lambda: titles(client, "u1") == [{"id": chat_id, "title": "رحلة الأهرامات"}])
    assert len(providers[0].once_calls) == 1


def test_follow_up_turn_continues_the_conversation(client):
    first = client.post("/chat/stream", json={"prompt": PROMPT, "model": "gemini"}, headers=auth("u1"))
    chat_id = first.headers["x-chat-id"]

    second = client.post(
        "/chat/stream",
        json={"prompt": "And the Sphinx?", "model": "deepseek", "chatId": chat_id},
        headers=auth("u1"),
    )

    assert second.headers["x-chat-id"] == chat_id
    assert parse_sse(second.text)[-1] == ("done", "END")
    detail = client.get(f"/chat/{chat_id}", headers=auth("u1")).json()["data"]
    assert [t["prompt"] for t in detail["messages"]] == [PROMPT, "And the Sphinx?"]


def test_foreign_chat_id_is_rejected_before_streaming(client, providers):
    owned = client.post("/chat/stream", json={"prompt": PROMPT, "model": "gemini"}, headers=auth("owner"))
    chat_id = owned.headers["x-chat-id"]
    calls_before = len(providers[0].stream_calls)

    response = client.post(
        "/chat/stream", json={"prompt": "hi", "model": "gemini", "chatId": chat_id}, headers=auth("intruder")
    )

    assert response.status_code == 404
    assert response.json()["error"] == "Chat not found or does not belong to the user."
    assert len(providers[0].stream_calls) == calls_before
    assert stats(client)["turns"] == 1


def test_unknown_model_is_a_json_400(client, providers):
    response = client.post("/chat/stream", json={"prompt": PROMPT, "model": "openai"}, headers=auth("u1"))

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid model specified."
    assert all(not p.stream_calls for p in providers)
    assert stats(client) == {"conversations": 0, "turns": 0}


def test_missing_or_blank_prompt_is_a_json_400(client, providers):
    for body in ({"model": "gemini"}, {"prompt": "   ", "model": "gemini"}, {"prompt": 42, "model": "gemini"}):
        response = client.post("/chat/stream", json=body)
        assert response.status_code == 400
        assert "error" in response.json()
    assert all(not p.stream_calls for p in providers)


def test_mid_stream_failure_sends_error_frame_and_keeps_partial_reply(client, providers):
    providers[0].fail_after = 2

    response = client.post("/chat/stream", json={"prompt": PROMPT, "model": "gemini"}, headers=auth("u1"))

    assert response.status_code == 200
    assert parse_sse(response.text) == [
        ("message", "Ahlan"),
        ("message", " ya "),
        ("message", '{"error": "An error occurred during streaming"}'),
    ]
    chat_id = response.headers["x-chat-id"]
    detail = client.get(f"/chat/{chat_id}", headers=auth("u1")).json()["data"]
    assert [t["reply"] for t in detail["messages"]] == ["Ahlan ya "]


def test_failure_before_any_text_leaves_no_empty_conversation(client, providers):
    providers[0].fail_after = 0

    response = client.post("/chat/stream", json={"prompt": PROMPT, "model": "gemini"}, headers=auth("u1"))

    assert parse_sse(response.text) == [("message", '{"error": "An error occurred during streaming"}')]
    assert titles(client, "u1") == []
    assert stats(client) == {"conversations": 0, "turns": 0}


def test_multi_line_delta_survives_framing(client, providers):
    providers[0].deltas = ["Giza:\n- Khufu\n- Khafre"]

    response = client.post("/chat/stream", json={"prompt": PROMPT, "model": "gemini"})

    assert parse_sse(response.text)[0] == ("message", "Giza:\n- Khufu\n- Khafre")


# -----------------------------------------------------------------------------
# auth
# -----------------------------------------------------------------------------

def test_invalid_token_is_401(client, providers):
    response = client.post(
        "/chat/stream",
        json={"prompt": PROMPT, "model": "gemini"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired token"
    assert all(not p.stream_calls for p in providers)


def test_history_endpoints_need_a_token(client):
    response = client.get("/chat/titles")
    assert response.status_code == 401
    assert response.json()["error"] == "No token provided"
    assert client.get("/chat/some-id").status_code == 401


def test_chat_detail_of_someone_else_is_404(client):
    owned = client.post("/chat/stream", json={"prompt": PROMPT, "model": "gemini"}, headers=auth("owner"))
    chat_id = owned.headers["x-chat-id"]

    assert client.get(f"/chat/{chat_id}", headers=auth("intruder")).status_code == 404
    assert client.get("/chat/unknown", headers=auth("owner")).status_code == 404


# -----------------------------------------------------------------------------
# POST /chat
# -----------------------------------------------------------------------------

def test_single_shot_anonymous(client, providers):
    providers[1].once_reply = "The pyramids are in Giza."

    response = client.post("/chat", json={"prompt": PROMPT, "model": "deepseek"})

    assert response.status_code == 200
    assert response.json() == {
        "data": {"chatId": None, "reply": "The pyramids are in Giza."},
        "status": True,
        "message": "Success",
    }
    assert stats(client) == {"conversations": 0, "turns": 0}


def test_single_shot_authenticated_is_stored(client, providers):
    providers[1].once_reply = "The pyramids are in Giza."

    response = client.post("/chat", json={"prompt": PROMPT, "model": "deepseek"}, headers=auth("u1"))

    chat_id = response.json()["data"]["chatId"]
    assert chat_id
    detail = client.get(f"/chat/{chat_id}", headers=auth("u1")).json()["data"]
    assert [t["reply"] for t in detail["messages"]] == ["The pyramids are in Giza."]


def test_single_shot_provider_failure_is_500(client, providers):
    providers[0].once_error = True

    response = client.post("/chat", json={"prompt": PROMPT, "model": "gemini"}, headers=auth("u1"))

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to fetch response."
    assert stats(client) == {"conversations": 0, "turns": 0}


def test_non_text_delta_ends_with_error_frame_and_keeps_partial_reply(client, providers):
    providers[0].deltas = ["Ahlan", 123, "never sent"]

    response = client.post("/chat/stream", json={"prompt": PROMPT, "model": "gemini"}, headers=auth("u1"))

    assert parse_sse(response.text) == [
        ("message", "Ahlan"),
        ("message", '{"error": "An error occurred during streaming"}'),
    ]
    chat_id = response.headers["x-chat-id"]
    detail = client.get(f"/chat/{chat_id}", headers=auth("u1")).json()["data"]
    assert [t["reply"] for t in detail["messages"]] == ["Ahlan"]
    assert stats(client) == {"conversations": 1, "turns": 1}


def test_unexpected_provider_crash_leaves_no_empty_conversation(client, providers):
    providers[0].fail_after = 0
    providers[0].failure = RuntimeError("adapter bug")

    response = client.post("/chat/stream", json={"prompt": PROMPT, "model": "gemini"}, headers=auth("u1"))

    assert parse_sse(response.text) == [("message", '{"error": "An error occurred during streaming"}')]
    chat_id = response.headers["x-chat-id"]
    assert client.get(f"/chat/{chat_id}", headers=auth("u1")).status_code == 404
    assert stats(client) == {"conversations": 0, "turns": 0}


def test_production_refuses_to_start_with_the_default_jwt_secret(tmp_path, monkeypatch, registry):
    monkeypatch.setattr(main, "DATABASE_PATH", tmp_path / "prod.db")
    monkeypatch.setattr(main, "build_provider_registry", lambda http_client: registry)
    monkeypatch.setattr(main, "IS_PRODUCTION", True)
    monkeypatch.setattr(main, "JWT_SECRET_CONFIGURED", False)

    with pytest.raises(RuntimeError, match="JWT_SECRET"):
        with TestClient(main.app):
            pass
