from conftest import create_template_payload


def seed_completed(client, completed=1, **kwargs):
    template = client.post("/api/v1/templates", json=create_template_payload(**kwargs)).json()
    items = client.get(f"/api/v1/instances?template_id={template['id']}").json()["items"]
    for item in items[:completed]:
        client.patch(f"/api/v1/instances/{item['id']}", json={"action": "complete"})
    return items


def total_earned(client):
    return client.get("/api/v1/stats").json()["total_earned"]


class TestPayouts:
    def test_example_scenario(self, client):
        seed_completed(client, completed=1, count=3)
        assert total_earned(client) == "2.00"

        res = client.post("/api/v1/payouts", json={"amount": "2.00", "notes": "allowance"})
        assert res.status_code == 201
        payout = res.json()
        assert payout["amount"] == "2.00"
        assert payout["settled_amount"] == "2.00"
        assert payout["notes"] == "allowance"
        assert payout["date"].startswith("2024-01-01T09:00")
        assert total_earned(client) == "0.00"

        res_again = client.post("/api/v1/payouts", json={"amount": "2.00"})
        assert res_again.status_code == 400
        assert res_again.json() == {"error": "ValidationError", "message": "Payout amount exceeds total earned"}
        assert len(client.get("/api/v1/payouts").json()) == 1

    def test_non_positive_amount(self, client):
        seed_completed(client, completed=1, count=1)
        for amount in ["0", "-5", 0]:
            res = client.post("/api/v1/payouts", json={"amount": amount})
            assert res.status_code == 400
            assert res.json()["message"] == "Invalid payout amount"
        assert client.get("/api/v1/payouts").json() == []

    def test_unparseable_amount(self, client):
        res = client.post("/api/v1/payouts", json={"amount": "lots"})
        assert res.status_code == 422

    def test_settled_instances_are_marked_and_locked(self, client, clock):
        items = seed_completed(client, completed=2, count=3)
        payout = client.post("/api/v1/payouts", json={"amount": "4.00"}).json()

        settled = client.get(f"/api/v1/instances/{items[0]['id']}").json()
        assert settled["payout_id"] == payout["id"]
        assert settled["paid_out_at"] is not None

        clock.advance(hours=1)
        res = client.patch(f"/api/v1/instances/{items[0]['id']}", json={"action": "complete"})
        assert res.status_code == 200
        assert res.json() == settled
        assert total_earned(client) == "0.00"

        res = client.patch(f"/api/v1/instances/{items[0]['id']}", json={"action": "uncomplete"})
        assert res.status_code == 400
        assert client.get(f"/api/v1/instances/{items[0]['id']}").json()["completed"] is True

    def test_partial_payout_keeps_remainder(self, client):
        seed_completed(client, completed=2, count=3)
        client.post("/api/v1/payouts", json={"amount": "1.00"})
        stats = client.get("/api/v1/stats").json()
        assert stats["total_earned"] == "3.00"
        assert stats["total_paid_out"] == "1.00"

    def test_list_payouts_newest_first(self, client, clock):
        items = seed_completed(client, completed=1, count=2)
        first = client.post("/api/v1/payouts", json={"amount": "2.00"}).json()
        clock.advance(days=1)
        client.patch(f"/api/v1/instances/{items[1]['id']}", json={"action": "complete"})
        second = client.post("/api/v1/payouts", json={"amount": "2.00"}).json()

        res = client.get("/api/v1/payouts")
        assert res.status_code == 200
        assert [p["id"] for p in res.json()] == [second["id"], first["id"]]


class TestStatistics:
    def test_stats(self, client):
        seed_completed(client, completed=1, start_date="2023-12-30", count=4)
        res = client.get("/api/v1/stats")
        assert res.status_code == 200
        assert res.json() == {
            "total_earned": "2.00",
            "total_paid_out": "0.00",
            "completed_count": 1,
            "due_count": 2,
        }
