"""Replay of JSON scenarios: timestamped vault operations against a fresh engine.

A scenario looks like::

    {
      "params": {"high_collateral_ratio": "2", "annual_interest_rate": "0.05"},
      "start_time": 0,
      "price": "1",
      "pool": {"liquidity": "10000", "limit": "10000"},
      "registry": {"owner": "0xA...", "root_updater": "0xB...", "pause_operator": "0xC..."},
      "scores": [{"account": "0x1...", "protocol": "arcx.credit", "score": 500}],
      "steps": [
        {"at": 0, "action": "deposit", "account": "0x1...", "amount": "1000"},
        {"at": 60, "action": "borrow", "account": "0x1...", "amount": "500", "proof": true},
        {"at": 120, "action": "set_price", "price": "0.9"},
        {"at": 180, "action": "liquidate", "account": "0x1...", "liquidator": "0x2..."}
      ]
    }

Amounts are human decimals. Collateral amounts use the configured collateral decimals, debt
amounts use 18. `"proof": true` attaches the account's proof from the score tree whose root
is currently authoritative; `"score"` next to it overrides the claimed score. On a borrow,
`"limit_proof": true` attaches the account's borrow limit proof the same way (`"limit_score"`
overrides it; limit scores are raw 18-decimal amounts). A step may set `"expect_error"` to the
error class name it is expected to raise.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from typing import Any

from credit_vaults.collaborators import InMemoryLiquidityPool, StaticPriceOracle
from credit_vaults.config import CoreParameters
from credit_vaults.constants import DEFAULT_MAX_SCORE, DEFAULT_ROOT_DELAY_DURATION, EMPTY_ROOT
from credit_vaults.errors import ArithmeticFault, VaultEngineError
from credit_vaults.formatters import as_int, format_amount, parse_units
from credit_vaults.interest import rate_for_annual_percentage
from credit_vaults.ledger import VaultLedger
from credit_vaults.merkle import PassportScoreTree, parse_scores
from credit_vaults.models import OperationResult, ScoreProof
from credit_vaults.score_registry import ScoreRegistry

ACTIONS = (
    "deposit",
    "borrow",
    "repay",
    "withdraw",
    "exit",
    "liquidate",
    "set_price",
    "set_interest_rate",
    "update_root",
    "set_pause",
)


@dataclass(frozen=True)
class ScenarioStep:
    at: int
    action: str
    args: dict[str, Any] = field(default_factory=dict)

    @property
    def account(self) -> str:
        return str(self.args.get("account", ""))


@dataclass(frozen=True)
class Scenario:
    params: CoreParameters
    start_time: int
    price: int
    pool_liquidity: int
    pool_limit: int | None
    registry: dict[str, Any] | None
    scores: list[dict[str, Any]]
    steps: list[ScenarioStep]


def load_scenario(data: dict[str, Any]) -> Scenario:
    """Parse and check a decoded scenario document."""
    if not isinstance(data, dict):
        raise ValueError("Scenario must be a JSON object")

    params = CoreParameters.from_dict(data.get("params") or {})
    start_time = as_int(data.get("start_time"))
    pool = data.get("pool") or {}
    limit = pool.get("limit")

    steps: list[ScenarioStep] = []
    last_at = start_time
    for idx, raw in enumerate(data.get("steps") or []):
        action = raw.get("action")
        if action not in ACTIONS:
            raise ValueError(f"Step {idx}: unknown action {action!r}")
        at = as_int(raw.get("at"), default=last_at)
        if at < last_at:
            raise ValueError(f"Step {idx}: timestamp {at} goes back in time (previous {last_at})")
        last_at = at
        args = {k: v for k, v in raw.items() if k not in ("at", "action")}
        steps.append(ScenarioStep(at=at, action=action, args=args))

    scores = list(data.get("scores") or [])
    registry = data.get("registry")
    if scores and registry is None:
        raise ValueError("Scenario has scores but no registry section")

    return Scenario(
        params=params,
        start_time=start_time,
        price=parse_units(data.get("price", 1)),
        pool_liquidity=parse_units(pool.get("liquidity", 0)),
        pool_limit=parse_units(limit) if limit is not None else None,
        registry=registry,
        scores=scores,
        steps=steps,
    )


class ScenarioRunner:
    """Owns the engine and collaborators for one replay."""

    def __init__(self, scenario: Scenario) -> None:
        self.scenario = scenario
        token = scenario.params.borrow_token
        self.oracle = StaticPriceOracle(scenario.price)
        self.pool = InMemoryLiquidityPool(
            liquidity={token: scenario.pool_liquidity},
            limits={token: scenario.pool_limit} if scenario.pool_limit is not None else None,
        )
        # Trees by root, so proofs can be taken from whichever root is current.
        self.trees: dict[str, PassportScoreTree] = {}
        self.registry = self._build_registry(scenario) if scenario.registry is not None else None
        self.ledger = VaultLedger(
            scenario.params,
            oracle=self.oracle,
            pool=self.pool,
            registry=self.registry,
            start_time=scenario.start_time,
        )

    def _add_tree(self, entries: list[dict[str, Any]]) -> str:
        tree = PassportScoreTree(parse_scores(entries))
        root = tree.get_hex_root()
        self.trees[root] = tree
        return root

    def _build_registry(self, scenario: Scenario) -> ScoreRegistry:
        cfg = scenario.registry or {}
        initial_root = cfg.get("initial_root", EMPTY_ROOT)
        if scenario.scores:
            initial_root = self._add_tree(scenario.scores)
        return ScoreRegistry(
            owner=str(cfg["owner"]),
            root_updater=str(cfg["root_updater"]),
            pause_operator=str(cfg["pause_operator"]),
            initial_root=initial_root,
            max_score=as_int(cfg.get("max_score"), default=DEFAULT_MAX_SCORE),
            root_delay_duration=as_int(cfg.get("root_delay_duration"), default=DEFAULT_ROOT_DELAY_DURATION),
            start_time=scenario.start_time,
            paused=bool(cfg.get("paused", False)),
        )

    def proof_for(self, step: ScenarioStep, *, limit: bool = False) -> ScoreProof | None:
        """The step account's credit proof, or its borrow limit proof when `limit` is set."""
        flag, override = ("limit_proof", "limit_score") if limit else ("proof", "score")
        if not step.args.get(flag):
            return None
        if self.registry is None:
            raise ValueError("Step asks for a proof but the scenario has no registry")
        tree = self.trees.get(self.registry.current_root)
        if tree is None:
            raise ValueError(f"No score tree for current root {self.registry.current_root}")
        owner = step.account.lower()
        if limit:
            protocol = self.scenario.params.borrow_limit_proof_protocol
        else:
            protocol = str(step.args.get("protocol", self.scenario.params.proof_protocol))
        for s in tree.scores:
            if s.account.lower() == owner and s.protocol == protocol:
                proof = tree.get_score_proof(s)
                if override in step.args:
                    return ScoreProof(
                        account=proof.account,
                        protocol=proof.protocol,
                        score=as_int(step.args[override]),
                        merkle_proof=proof.merkle_proof,
                    )
                return proof
        raise ValueError(f"No {protocol} score for {step.account} in the current tree")

    def apply(self, step: ScenarioStep) -> dict[str, Any]:
        """Run one step against the engine and return details for reporting."""
        ledger = self.ledger
        args = step.args
        decimals = self.scenario.params.collateral_decimals
        now = step.at

        if step.action == "deposit":
            vault = ledger.deposit(step.account, parse_units(args["amount"], decimals), now=now)
            return {"collateral": vault.collateral_amount}
        if step.action == "borrow":
            vault = ledger.borrow(
                step.account,
                parse_units(args["amount"]),
                now=now,
                proof=self.proof_for(step),
                borrow_limit_proof=self.proof_for(step, limit=True),
            )
            return {"debt": ledger.actual_debt(step.account), "expected_epoch": vault.expected_epoch_with_proof}
        if step.action == "repay":
            ledger.update_index(now)
            amount = ledger.actual_debt(step.account) if args.get("amount") == "all" else parse_units(args["amount"])
            split = ledger.repay(step.account, amount, now=now)
            return {"interest_paid": split.interest_paid, "principal_paid": split.principal_paid}
        if step.action == "withdraw":
            vault = ledger.withdraw(
                step.account, parse_units(args["amount"], decimals), now=now, proof=self.proof_for(step)
            )
            return {"collateral": vault.collateral_amount}
        if step.action == "exit":
            _, collateral = ledger.exit(step.account, now=now)
            return {"collateral_returned": collateral}
        if step.action == "liquidate":
            info = ledger.liquidate(step.account, str(args["liquidator"]), now=now, proof=self.proof_for(step))
            return {
                "collateral_seized": info.collateral_to_seize,
                "debt_cancelled": info.debt_to_cancel,
                "collateral_to_protocol": info.collateral_to_protocol,
            }
        if step.action == "set_price":
            ledger.update_index(now)
            self.oracle.set_price(parse_units(args["price"]))
            return {"price": self.oracle.price}
        if step.action == "set_interest_rate":
            rate = rate_for_annual_percentage(parse_units(args["annual_rate"]))
            ledger.set_parameters(replace(ledger.params, interest_rate=rate), now=now)
            return {"interest_rate": rate}
        if step.action == "update_root":
            registry = self._require_registry()
            root = self._add_tree(args["scores"]) if "scores" in args else str(args["root"])
            registry.update_root(root, str(args["caller"]), now)
            return {"current_root": registry.current_root, "upcoming_root": registry.upcoming_root}
        if step.action == "set_pause":
            registry = self._require_registry()
            registry.set_pause(bool(args["paused"]), str(args["caller"]))
            return {"paused": registry.paused}
        raise ValueError(f"Unknown action {step.action!r}")

    def _require_registry(self) -> ScoreRegistry:
        if self.registry is None:
            raise ValueError("Scenario has no registry section")
        return self.registry

    def run(self) -> Iterator[OperationResult]:
        """Apply steps in order, yielding one result per step. Rejected steps do not stop the replay."""
        for idx, step in enumerate(self.scenario.steps):
            expected = step.args.get("expect_error")
            try:
                details = self.apply(step)
            except (VaultEngineError, ArithmeticFault, ValueError, KeyError) as ex:
                name = type(ex).__name__
                ok = expected is not None and _matches(ex, expected)
                yield OperationResult(idx, step.at, step.action, step.account, ok=ok, error=f"{name}: {ex}")
                continue
            if expected is not None:
                yield OperationResult(
                    idx, step.at, step.action, step.account, ok=False, error=f"expected {expected}, got success",
                    details=details,
                )
                continue
            yield OperationResult(idx, step.at, step.action, step.account, ok=True, details=details)


def _matches(ex: Exception, expected: str) -> bool:
    return any(cls.__name__ == expected for cls in type(ex).__mro__)


_DEBT_KEYS = ("debt", "interest_paid", "principal_paid", "debt_cancelled", "price")
_COLLATERAL_KEYS = ("collateral", "collateral_returned", "collateral_seized", "collateral_to_protocol")


def describe_details(details: dict[str, Any], *, collateral_decimals: int = 18) -> str:
    """One-line rendering of step details with amounts shown as decimals."""
    parts = []
    for k, v in details.items():
        if k in _DEBT_KEYS:
            parts.append(f"{k}={format_amount(v)}")
        elif k in _COLLATERAL_KEYS:
            parts.append(f"{k}={format_amount(v, decimals=collateral_decimals)}")
        else:
            parts.append(f"{k}={v}")
    return ", ".join(parts)
