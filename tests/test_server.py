import json
import os
import unittest
from unittest import mock

os.environ["AI_PROVIDER"] = "anthropic"
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")

from fastapi.testclient import TestClient

import server
from factories import (
    RecordingEngine,
    add_assignment,
    add_strategy,
    add_wallet,
    api_fetch,
    build_form_graph,
    build_node_graph,
    in_memory_session_factory,
)
from graph_errors import ApiError, EngineRequestError
from strategy_activation import StrategyActivationService
from strategy_generator import StrategyGenerator


class MockProvider:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error

    async def generate(self, system_prompt, user_prompt):
        if self.error is not None:
            raise self.error
        return self.response


class ServerTests(unittest.TestCase):
    def setUp(self):
        self.session_factory = in_memory_session_factory()
        self.engine = RecordingEngine()
        self.provider = MockProvider(json.dumps(build_form_graph()))

        def session_override():
            session = self.session_factory()
            try:
                yield session
            finally:
                session.close()

        server.app.dependency_overrides[server.get_session] = session_override
        server.app.dependency_overrides[server.get_activation_service] = (
            lambda: StrategyActivationService(self.engine)
        )
        server.app.dependency_overrides[server.get_engine_client] = lambda: self.engine
        server.app.dependency_overrides[server.get_generator] = lambda: StrategyGenerator(self.provider)
        self.client = TestClient(server.app)

    def tearDown(self):
        server.app.dependency_overrides.clear()

    def seed(self, wallet_status="deployed", running=False):
        session = self.session_factory()
        try:
            wallet = add_wallet(session, status=wallet_status)
            strategy = add_strategy(session, is_active=running)
            add_assignment(session, wallet, strategy, is_running=running)
            session.commit()
            return wallet.id, strategy.id
        finally:
            session.close()

    def test_status(self):
        response = self.client.get("/status")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["provider"], "anthropic")

    def test_engine_status_is_proxied(self):
        response = self.client.get("/engine/status")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_engine_status_unreachable(self):
        self.engine.engine_status = mock.Mock(side_effect=EngineRequestError("status"))
        response = self.client.get("/engine/status")
        self.assertEqual(response.status_code, 502)

    def test_validate_form_graph(self):
        response = self.client.post("/strategies/validate", json={"graph": build_form_graph()})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["valid"])
        self.assertTrue(body["graph"]["conditions"][0]["id"])

    def test_validate_reports_first_form_error(self):
        graph = build_form_graph()
        graph["conditions"][0]["rules"][0]["indicator"] = "nope"
        response = self.client.post("/strategies/validate", json={"graph": graph})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["errors"], [
            {"path": "conditions[0].rules[0].indicator", "message": "is invalid"},
        ])

    def test_validate_reports_every_unsafe_node(self):
        graph = build_node_graph([api_fetch("http://example.com"), api_fetch("https://192.168.1.1/x")])
        response = self.client.post("/strategies/validate", json={"graph": graph})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(len(response.json()["errors"]), 2)

    def test_validate_rejects_non_finite_numbers(self):
        graph = build_form_graph()
        graph["action"]["size_usdc"] = float("nan")
        response = self.client.post(
            "/strategies/validate",
            content=json.dumps({"graph": graph}),
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["errors"][0]["path"], "action.size_usdc")

    def test_validate_reports_infinite_interval(self):
        graph = build_node_graph([api_fetch(interval_secs=float("inf"))])
        response = self.client.post(
            "/strategies/validate",
            content=json.dumps({"graph": graph}),
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["errors"][0]["path"], "graph.nodes.0.data.interval_secs")

    def test_generate_strips_description_before_length_check(self):
        response = self.client.post("/strategies/generate", json={"description": " " * 8 + "buy!"})
        self.assertEqual(response.status_code, 422)

        response = self.client.post("/strategies/generate", json={"description": "   Buy UP on a dip   "})
        self.assertEqual(response.status_code, 200)

    def test_generate(self):
        response = self.client.post("/strategies/generate", json={"description": "Buy UP when price drops 5%"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["graph"]["mode"], "form")

    def test_generate_rejects_short_description(self):
        response = self.client.post("/strategies/generate", json={"description": "buy"})
        self.assertEqual(response.status_code, 422)

    def test_generate_upstream_failure(self):
        self.provider.error = ApiError(500)
        response = self.client.post("/strategies/generate", json={"description": "Buy UP when price drops 5%"})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"], "AI generation failed with status 500.")

    def test_create_strategy(self):
        response = self.client.post(
            "/strategies",
            json={"user_id": 1, "name": "Dip buyer", "graph": build_form_graph()},
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["mode"], "form")

    def test_activate_and_deactivate(self):
        wallet_id, strategy_id = self.seed()

        response = self.client.post(f"/strategies/{strategy_id}/activate")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["wallet_ids"], [wallet_id])

        response = self.client.post(f"/strategies/{strategy_id}/deactivate")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.engine.operations("deactivate"), [wallet_id])

    def test_activate_undeployed_wallet_conflicts(self):
        _, strategy_id = self.seed(wallet_status="pending")
        response = self.client.post(f"/strategies/{strategy_id}/activate")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(self.engine.calls, [])

    def test_engine_failure_is_reported(self):
        wallet_id, strategy_id = self.seed()
        self.engine.fail_on = {("activate", wallet_id)}
        self.engine.error = EngineRequestError("activate", wallet_id=wallet_id, strategy_id=strategy_id, status=500)

        response = self.client.post(f"/strategies/{strategy_id}/activate")

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["error"], "Failed to activate strategy. Engine may be unavailable.")

    def test_missing_strategy(self):
        response = self.client.post("/strategies/404/activate")
        self.assertEqual(response.status_code, 404)

    def test_assign_and_delete_wallet(self):
        session = self.session_factory()
        wallet = add_wallet(session)
        strategy = add_strategy(session)
        session.commit()
        wallet_id, strategy_id = wallet.id, strategy.id
        session.close()

        response = self.client.post(
            f"/wallets/{wallet_id}/strategies",
            json={"strategy_id": strategy_id, "markets": ["btc-updown-15m"], "max_position_usdc": 75},
        )
        self.assertEqual(response.status_code, 201)
        self.assertFalse(response.json()["is_running"])

        response = self.client.post(
            f"/wallets/{wallet_id}/strategies",
            json={"strategy_id": strategy_id, "markets": ["eth-updown-1h"], "is_paper": True},
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["markets"], ["eth-updown-1h"])
        self.assertEqual(response.json()["max_position_usdc"], 100)
        self.assertTrue(response.json()["is_paper"])

        response = self.client.delete(f"/wallets/{wallet_id}")
        self.assertEqual(response.status_code, 204)

    def test_deploying_wallet_cannot_be_deleted(self):
        wallet_id, _ = self.seed(wallet_status="deploying")
        response = self.client.delete(f"/wallets/{wallet_id}")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"], "Cannot delete a wallet while Safe is deploying.")

    def test_unassign_strategy(self):
        wallet_id, strategy_id = self.seed(running=True)

        response = self.client.delete(f"/wallets/{wallet_id}/strategies/{strategy_id}")
        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.engine.operations("deactivate"), [wallet_id])

        response = self.client.delete(f"/wallets/{wallet_id}/strategies/{strategy_id}")
        self.assertEqual(response.status_code, 404)

    def test_kill_switch(self):
        wallet_id, strategy_id = self.seed(running=True)
        self.assertEqual(self.client.post(f"/strategies/{strategy_id}/kill").status_code, 200)
        self.assertEqual(self.client.post(f"/strategies/{strategy_id}/unkill").status_code, 200)
        self.assertEqual(self.engine.operations("kill"), [wallet_id])


if __name__ == "__main__":
    unittest.main()
