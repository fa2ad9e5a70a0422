"""Builders shared by the test modules."""

from decimal import Decimal

from database import create_db_engine, create_session_factory, init_db
from storage_models import StrategyModel, WalletModel, WalletStrategyModel


def build_form_graph():
    return {
        "mode": "form",
        "conditions": [
            {
                "type": "AND",
                "rules": [
                    {"indicator": "abs_move_pct", "operator": ">", "value": 5.0},
                    {"indicator": "spread_up", "operator": "<", "value": 0.03},
                ],
            },
            {
                "type": "OR",
                "rules": [
                    {"indicator": "hour_utc", "operator": "between", "value": [8, 14]},
                ],
            },
        ],
        "action": {
            "signal": "buy",
            "outcome": "UP",
            "size_mode": "fixed",
            "size_usdc": 50,
            "order_type": "market",
        },
        "risk": {
            "stoploss_pct": 30,
            "take_profit_pct": 80,
            "max_position_usdc": 200,
            "max_trades_per_slot": 1,
        },
    }


def build_node_graph(api_fetch_data=()):
    nodes = [
        {"id": "in", "type": "input", "data": {"field": "mid_up"}, "position": {"x": 0, "y": 0}},
        {"id": "act", "type": "action", "data": {"signal": "buy", "outcome": "UP"}},
    ]
    for idx, data in enumerate(api_fetch_data):
        nodes.append({"id": f"fetch{idx}", "type": "api_fetch", "data": data})
    return {
        "mode": "node",
        "nodes": nodes,
        "edges": [{"source": "in", "target": "act"}],
    }


def api_fetch(url="https://api.example.com/data", interval_secs=60):
    return {"url": url, "json_path": "main.temp", "interval_secs": interval_secs}


class RecordingEngine:
    """Execution engine double that records calls and can fail on demand."""

    def __init__(self, fail_on=None, error=None):
        self.calls = []
        self.fail_on = fail_on or set()
        self.error = error

    def _record(self, operation, wallet_id, strategy_id, **extra):
        self.calls.append((operation, wallet_id, strategy_id, extra))
        if (operation, wallet_id) in self.fail_on:
            raise self.error

    def activate_strategy(self, wallet_id, strategy_id, graph, markets, max_position_usdc=1000.0,
                          is_paper=False, private_key_enc="", safe_address=""):
        self._record(
            "activate", wallet_id, strategy_id,
            markets=markets, max_position_usdc=max_position_usdc, is_paper=is_paper,
            private_key_enc=private_key_enc, safe_address=safe_address, graph=graph,
        )

    def deactivate_strategy(self, wallet_id, strategy_id):
        self._record("deactivate", wallet_id, strategy_id)

    def kill_strategy(self, wallet_id, strategy_id):
        self._record("kill", wallet_id, strategy_id)

    def unkill_strategy(self, wallet_id, strategy_id):
        self._record("unkill", wallet_id, strategy_id)

    def engine_status(self):
        return {"status": "ok"}

    def operations(self, name):
        return [call[1] for call in self.calls if call[0] == name]


def in_memory_session_factory():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    return create_session_factory(engine)


def add_wallet(session, status="deployed", **overrides):
    wallet = WalletModel(
        user_id=overrides.pop("user_id", 1),
        signer_address=overrides.pop("signer_address", "0x" + "1" * 40),
        safe_address=overrides.pop("safe_address", None),
        private_key_enc=overrides.pop("private_key_enc", "enc-key"),
        status=status,
        **overrides,
    )
    session.add(wallet)
    session.flush()
    if wallet.safe_address is None:
        wallet.safe_address = "0x" + format(wallet.id, "040x")
    return wallet


def add_strategy(session, graph=None, **overrides):
    graph = graph or build_form_graph()
    strategy = StrategyModel(
        user_id=overrides.pop("user_id", 1),
        name=overrides.pop("name", "Test strategy"),
        mode=graph["mode"],
        graph=graph,
        is_active=overrides.pop("is_active", False),
        **overrides,
    )
    session.add(strategy)
    session.flush()
    return strategy


def add_assignment(session, wallet, strategy, is_running=False, **overrides):
    assignment = WalletStrategyModel(
        wallet_id=wallet.id,
        strategy_id=strategy.id,
        markets=overrides.pop("markets", ["btc-updown-15m"]),
        max_position_usdc=overrides.pop("max_position_usdc", Decimal("250")),
        is_paper=overrides.pop("is_paper", False),
        is_running=is_running,
        **overrides,
    )
    if is_running:
        assignment.mark_running()
    session.add(assignment)
    session.flush()
    return assignment
