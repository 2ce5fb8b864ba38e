import pytest

from conftest import future_iso


@pytest.fixture
def ad(owner, create_ad_space):
    return create_ad_space(owner)


def approve(client, owner, request_id, start=None, end=None):
    return client.post(
        f"/api/requests/update/{request_id}",
        json={"status": "Approved", "startDate": start or future_iso(1), "endDate": end or future_iso(30)},
        headers=owner["headers"],
    )


def reject(client, owner, request_id):
    return client.post(
        f"/api/requests/update/{request_id}",
        json={"status": "Rejected"},
        headers=owner["headers"],
    )


def ad_status(client, ad_id):
    return client.get(f"/api/adSpaces/{ad_id}").json()["status"]


def test_send_marks_space_requested_and_notifies_owner(client, mailer, owner, advertiser, ad, send_request):
    r = send_request(advertiser, ad["_id"], requirements="Need night lighting")
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "Pending"
    assert body["duration"] == {"type": "months", "value": 3}
    assert body["adSpace"]["title"] == "Mall Billboard"
    assert body["sender"]["name"] == "Adam Advertiser"
    assert ad_status(client, ad["_id"]) == "Requested"

    subjects = [m["subject"] for m in mailer.sent_to(owner["email"])]
    assert 'New Request for "Mall Billboard"' in subjects


def test_send_validation(client, owner, advertiser, ad, send_request):
    assert send_request(advertiser, "missing").status_code == 404
    assert send_request(advertiser, ad["_id"], duration_type="years").status_code == 400
    assert send_request(advertiser, ad["_id"], value=0).status_code == 400
    assert send_request(owner, ad["_id"]).status_code == 403

    assert send_request(advertiser, ad["_id"]).status_code == 201
    r = send_request(advertiser, ad["_id"])
    assert r.status_code == 400
    assert r.json()["message"] == "You already have a pending request for this AdSpace"


def test_list_mine_by_role(client, owner, advertiser, ad, send_request):
    send_request(advertiser, ad["_id"])
    sent = client.get("/api/requests/my", headers=advertiser["headers"]).json()
    received = client.get("/api/requests/my", headers=owner["headers"]).json()
    assert len(sent) == 1
    assert [r["_id"] for r in received] == [sent[0]["_id"]]
    assert received[0]["owner"]["_id"] == owner["id"]


def test_approve_books_space(client, mailer, owner, advertiser, ad, send_request):
    req = send_request(advertiser, ad["_id"]).json()
    start, end = future_iso(2), future_iso(92)

    r = approve(client, owner, req["_id"], start, end)
    assert r.status_code == 200
    assert r.json()["status"] == "Approved"
    assert r.json()["startDate"][:10] == start[:10]

    space = client.get(f"/api/adSpaces/{ad['_id']}").json()
    assert space["status"] == "Booked"
    assert space["booking"]["requestId"] == req["_id"]
    assert space["booking"]["duration"] == {"type": "months", "value": 3}

    subjects = [m["subject"] for m in mailer.sent_to(advertiser["email"])]
    assert 'Request Approved for "Mall Billboard"' in subjects

    r = approve(client, owner, req["_id"])
    assert r.status_code == 400
    assert r.json()["message"] == "Request already approved"


def test_approve_requires_valid_dates(client, owner, advertiser, ad, send_request):
    req = send_request(advertiser, ad["_id"]).json()

    r = client.post(f"/api/requests/update/{req['_id']}", json={"status": "Approved"}, headers=owner["headers"])
    assert r.status_code == 400
    assert r.json()["message"].startswith("Start date and end date are required")

    r = approve(client, owner, req["_id"], future_iso(10), future_iso(5))
    assert r.json()["message"] == "End date must be after start date"

    r = approve(client, owner, req["_id"], "2020-01-01", "2020-02-01")
    assert r.json()["message"] == "Start date cannot be in the past"

    r = approve(client, owner, req["_id"], "tomorrow", future_iso(5))
    assert r.json()["message"] == "Invalid date format"

    # nothing was written by the failed attempts
    assert ad_status(client, ad["_id"]) == "Requested"
    mine = client.get("/api/requests/my", headers=owner["headers"]).json()
    assert mine[0]["status"] == "Pending"


def test_invalid_status_value(client, owner, advertiser, ad, send_request):
    req = send_request(advertiser, ad["_id"]).json()
    r = client.post(f"/api/requests/update/{req['_id']}", json={"status": "Maybe"}, headers=owner["headers"])
    assert r.status_code == 400


def test_only_the_space_owner_decides(client, make_user, advertiser, ad, send_request):
    req = send_request(advertiser, ad["_id"]).json()
    intruder = make_user("Other Owner", "other@example.com", "owner")
    r = approve(client, intruder, req["_id"])
    assert r.status_code == 403
    assert r.json()["message"] == "Not authorized"

    r = approve(client, advertiser, req["_id"])
    assert r.status_code == 403


def test_approve_rejects_competing_requests(client, mailer, owner, advertiser, make_user, ad, send_request):
    rival = make_user("Rita Rival", "rival@example.com", "advertiser")
    winner = send_request(advertiser, ad["_id"]).json()
    loser = send_request(rival, ad["_id"]).json()

    assert approve(client, owner, winner["_id"]).status_code == 200

    statuses = {r["_id"]: r["status"] for r in client.get("/api/requests/my", headers=owner["headers"]).json()}
    assert statuses == {winner["_id"]: "Approved", loser["_id"]: "Rejected"}
    assert 'Request Rejected for "Mall Billboard"' in [m["subject"] for m in mailer.sent_to(rival["email"])]

    r = send_request(rival, ad["_id"])
    assert r.status_code == 400
    assert r.json()["message"].startswith("This AdSpace is already booked")


def test_reject_keeps_requested_while_others_pending(client, owner, advertiser, make_user, ad, send_request):
    rival = make_user("Rita Rival", "rival@example.com", "advertiser")
    first = send_request(advertiser, ad["_id"]).json()
    second = send_request(rival, ad["_id"]).json()

    r = reject(client, owner, first["_id"])
    assert r.status_code == 200
    assert r.json()["status"] == "Rejected"
    assert r.json()["rejectedAt"] is not None
    assert ad_status(client, ad["_id"]) == "Requested"

    reject(client, owner, second["_id"])
    assert ad_status(client, ad["_id"]) == "Available"

    r = reject(client, owner, second["_id"])
    assert r.json()["message"] == "Request already rejected"


def test_rejected_advertiser_can_ask_again(client, owner, advertiser, ad, send_request):
    first = send_request(advertiser, ad["_id"]).json()
    reject(client, owner, first["_id"])
    assert send_request(advertiser, ad["_id"]).status_code == 201
