from fastapi import FastAPI

from core.response_envelope import apply_response_documentation, document_response, error_payload, success_payload


def test_success_payload_is_flat_with_request_id():
    payload = success_payload(
        data={"avatarUrl": "https://cdn.test/a.png", "entity": {"_id": "1"}},
        message="Avatar updated",
        request_id="req-123",
    )
    assert payload == {
        "message": "Avatar updated",
        "avatarUrl": "https://cdn.test/a.png",
        "entity": {"_id": "1"},
        "requestId": "req-123",
    }


def test_success_payload_nests_non_mapping_data():
    payload = success_payload(data=["a", "b"], message="ok")
    assert payload == {"message": "ok", "data": ["a", "b"]}


def test_success_payload_does_not_let_data_override_message():
    payload = success_payload(data={"message": "from data"}, message="ok")
    assert payload["message"] == "ok"


def test_error_payload_includes_code_details_and_request_id():
    payload = error_payload(
        "File too large",
        code="TOO_LARGE",
        details={"maxBytes": 5242880},
        request_id="req-999",
    )
    assert payload == {
        "error": "File too large",
        "code": "TOO_LARGE",
        "details": {"maxBytes": 5242880},
        "requestId": "req-999",
    }


def test_error_payload_omits_empty_keys():
    assert error_payload("failed") == {"error": "failed"}


def test_documented_routes_render_success_and_error_examples():
    app = FastAPI()

    @app.patch("/owners/{owner_id}/avatar")
    @document_response(
        message="Avatar updated",
        success_example={"avatar": "https://cdn.test/a.png"},
        response_codes={404: "Owner not found", 502: "Asset service unavailable"},
    )
    async def update_avatar(owner_id: str):
        return {"avatar": "https://cdn.test/a.png"}

    apply_response_documentation(app)
    responses = app.openapi()["paths"]["/owners/{owner_id}/avatar"]["patch"]["responses"]

    assert responses["200"]["content"]["application/json"]["example"] == {
        "message": "Avatar updated",
        "avatar": "https://cdn.test/a.png",
    }
    assert responses["404"]["description"] == "Owner not found"
    assert responses["404"]["content"]["application/json"]["example"] == {"error": "Owner not found"}
    assert responses["502"]["content"]["application/json"]["example"] == {"error": "Asset service unavailable"}
