from datetime import datetime

from conftest import create_template_payload


def seed(client, **kwargs):
    template = client.post("/api/v1/templates", json=create_template_payload(**kwargs)).json()
    items = client.get(f"/api/v1/instances?template_id={template['id']}&limit=1000").json()["items"]
    return template, items


def assert_instance_shape(instance: dict):
    for key in [
        "id",
        "template_id",
        "title",
        "amount",
        "frequency",
        "due_date",
        "completed",
        "completed_at",
        "paid_out_at",
        "payout_id",
        "created_at",
    ]:
        assert key in instance
    datetime.fromisoformat(instance["created_at"])
    if instance["completed_at"] is not None:
        datetime.fromisoformat(instance["completed_at"])


class TestInstanceCompletion:
    def test_complete_and_uncomplete(self, client):
        _, items = seed(client, count=2)
        iid = items[0]["id"]

        res = client.patch(f"/api/v1/instances/{iid}", json={"action": "complete"})
        assert res.status_code == 200
        done = res.json()
        assert_instance_shape(done)
        assert done["completed"] is True
        assert done["completed_at"].startswith("2024-01-01T09:00")

        res = client.patch(f"/api/v1/instances/{iid}", json={"action": "uncomplete"})
        assert res.status_code == 200
        undone = res.json()
        assert undone["completed"] is False
        assert undone["completed_at"] is None

    def test_complete_refreshes_timestamp(self, client, clock):
        _, items = seed(client, count=1)
        iid = items[0]["id"]
        client.patch(f"/api/v1/instances/{iid}", json={"action": "complete"})
        clock.advance(hours=3)
        res = client.patch(f"/api/v1/instances/{iid}", json={"action": "complete"})
        assert res.json()["completed_at"].startswith("2024-01-01T12:00")

    def test_invalid_action(self, client):
        _, items = seed(client, count=1)
        res = client.patch(f"/api/v1/instances/{items[0]['id']}", json={"action": "finish"})
        assert res.status_code == 422

    def test_not_found(self, client):
        res = client.patch("/api/v1/instances/98765", json={"action": "complete"})
        assert res.status_code == 404
        assert res.json() == {"error": "InstanceNotFound", "message": "Chore instance not found"}
        assert client.get("/api/v1/instances/98765").status_code == 404

    def test_delete_instance(self, client):
        _, items = seed(client, count=2)
        iid = items[0]["id"]
        res = client.delete(f"/api/v1/instances/{iid}")
        assert res.status_code == 204
        assert client.get(f"/api/v1/instances/{iid}").status_code == 404
        assert client.delete(f"/api/v1/instances/{iid}").status_code == 404


class TestInstanceQueries:
    def test_due_lists_overdue_first(self, client):
        _, items = seed(client, start_date="2023-12-29", count=5)
        client.patch(f"/api/v1/instances/{items[1]['id']}", json={"action": "complete"})

        res = client.get("/api/v1/instances/due")
        assert res.status_code == 200
        assert [i["due_date"] for i in res.json()] == ["2023-12-29", "2023-12-31", "2024-01-01"]

    def test_by_date(self, client):
        seed(client, title="Trash", count=3)
        seed(client, title="Beds", frequency="weekly", count=2)

        res = client.get("/api/v1/instances/by-date/2024-01-01")
        assert res.status_code == 200
        assert [i["title"] for i in res.json()] == ["Beds", "Trash"]

        assert [i["title"] for i in client.get("/api/v1/instances/by-date/2024-01-02").json()] == ["Trash"]
        assert client.get("/api/v1/instances/by-date/not-a-date").status_code == 422

    def test_completed_history_filters(self, client, clock):
        _, items = seed(client, start_date="2023-10-01", count=2)
        clock.set(datetime(2023, 10, 2, 8, 0))
        client.patch(f"/api/v1/instances/{items[0]['id']}", json={"action": "complete"})
        clock.set(datetime(2023, 12, 30, 8, 0))
        client.patch(f"/api/v1/instances/{items[1]['id']}", json={"action": "complete"})
        clock.set(datetime(2024, 1, 1, 9, 0))

        all_ids = [i["id"] for i in client.get("/api/v1/instances/completed").json()]
        assert all_ids == [items[1]["id"], items[0]["id"]]

        week_ids = [i["id"] for i in client.get("/api/v1/instances/completed?filter=week").json()]
        assert week_ids == [items[1]["id"]]

        on_ids = [i["id"] for i in client.get("/api/v1/instances/completed?on=2023-10-02").json()]
        assert on_ids == [items[0]["id"]]

    def test_completed_history_unknown_filter(self, client):
        res = client.get("/api/v1/instances/completed?filter=decade")
        assert res.status_code == 400
        assert res.json()["error"] == "ValidationError"

    def test_list_pagination(self, client):
        seed(client, count=7)
        res = client.get("/api/v1/instances?limit=3&offset=3")
        assert res.status_code == 200
        page = res.json()
        assert page["total"] == 7
        assert page["limit"] == 3
        assert page["offset"] == 3
        assert [i["due_date"] for i in page["items"]] == ["2024-01-04", "2024-01-05", "2024-01-06"]

    def test_list_filter_completed(self, client):
        _, items = seed(client, count=4)
        client.patch(f"/api/v1/instances/{items[2]['id']}", json={"action": "complete"})
        done = client.get("/api/v1/instances?completed=true").json()
        assert [i["id"] for i in done["items"]] == [items[2]["id"]]
        assert client.get("/api/v1/instances?completed=false").json()["total"] == 3

    def test_list_filter_paid_out(self, client):
        _, items = seed(client, count=3)
        client.patch(f"/api/v1/instances/{items[0]['id']}", json={"action": "complete"})
        client.post("/api/v1/payouts", json={"amount": "2.00"})
        client.patch(f"/api/v1/instances/{items[1]['id']}", json={"action": "complete"})

        paid = client.get("/api/v1/instances?paid_out=true").json()
        assert [i["id"] for i in paid["items"]] == [items[0]["id"]]
        unpaid_done = client.get("/api/v1/instances?paid_out=false&completed=true").json()
        assert [i["id"] for i in unpaid_done["items"]] == [items[1]["id"]]
