from waweb.errors import DeliveryError, NotReady


def test_send_ok(waweb_client):
    client, stub = waweb_client
    response = client.post("/send", json={"phone": "15551234567", "message": "hello"})
    assert response.status_code == 200
    assert response.json() == {"status": "Message sent successfully!"}
    assert stub.sent == [("15551234567", "hello")]
    assert response.headers["cache-control"].startswith("no-store")


def test_send_empty_phone_is_rejected(waweb_client):
    client, stub = waweb_client
    response = client.post("/send", json={"phone": "", "message": "hi"})
    assert response.status_code == 400
    assert response.json() == {"error": "Phone and message are required"}
    assert stub.sent == []


def test_send_missing_fields_never_reach_client(waweb_client):
    client, stub = waweb_client
    for body in ({"phone": "15551234567"}, {"message": "hi"}, {}, {"phone": "1", "message": ""}):
        response = client.post("/send", json=body)
        assert response.status_code == 400
        assert response.json()["error"] == "Phone and message are required"
    assert stub.sent == []


def test_send_malformed_body_is_rejected(waweb_client):
    client, stub = waweb_client
    not_json = client.post(
        "/send", content=b"phone=1", headers={"content-type": "application/json"}
    )
    as_list = client.post("/send", json=["15551234567", "hi"])
    wrong_type = client.post("/send", json={"phone": ["1"], "message": "hi"})
    assert not_json.status_code == 400
    assert as_list.status_code == 400
    assert wrong_type.status_code == 400
    assert stub.sent == []


def test_send_numeric_phone_is_accepted(waweb_client):
    client, stub = waweb_client
    response = client.post("/send", json={"phone": 15551234567, "message": "hi"})
    assert response.status_code == 200
    assert stub.sent == [("15551234567", "hi")]


def test_send_when_not_ready(waweb_client):
    client, stub = waweb_client
    stub.ready = False
    response = client.post("/send", json={"phone": "15551234567", "message": "hi"})
    assert response.status_code == 503
    assert response.json() == {"error": "WhatsApp client not ready"}
    assert stub.sent == []


def test_send_not_ready_race_maps_to_503(waweb_client):
    client, stub = waweb_client
    stub.send_error = NotReady("disconnected")
    response = client.post("/send", json={"phone": "15551234567", "message": "hi"})
    assert response.status_code == 503
    assert response.json() == {"error": "WhatsApp client not ready"}


def test_send_delivery_error(waweb_client):
    client, stub = waweb_client
    stub.send_error = DeliveryError(RuntimeError("Phone number shared via url is invalid."))
    response = client.post("/send", json={"phone": "15551234567", "message": "hi"})
    assert response.status_code == 500
    assert response.json() == {
        "error": "Failed to send message",
        "details": "Phone number shared via url is invalid.",
    }


def test_send_allows_cross_origin(waweb_client):
    client, _ = waweb_client
    response = client.post(
        "/send",
        json={"phone": "15551234567", "message": "hi"},
        headers={"Origin": "https://example.test"},
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_send_whitespace_message_is_sent_as_is(waweb_client):
    client, stub = waweb_client
    response = client.post("/send", json={"phone": "15551234567", "message": "   "})
    assert response.status_code == 200
    assert stub.sent == [("15551234567", "   ")]
