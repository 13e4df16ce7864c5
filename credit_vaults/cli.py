"""CLI and main logic."""

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from tqdm import tqdm

from credit_vaults.console import print_ledger_report, print_score_tree
from credit_vaults.constants import DEFAULT_TIMEOUT
from credit_vaults.ipfs import fetch_score_tree, resolve_gateways
from credit_vaults.merkle import PassportScoreTree, parse_score_tree_dump, parse_scores
from credit_vaults.scenario import ScenarioRunner, describe_details, load_scenario
from credit_vaults.validation import validate_ledger_totals, validate_score_tree_dump


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(description="Credit-score gated collateralized debt vaults.")
    sub = p.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="Replay a JSON scenario of timestamped vault operations.")
    replay.add_argument("scenario", type=Path, help="Scenario JSON file.")
    replay.add_argument(
        "--params",
        type=Path,
        default=None,
        help="JSON file with protocol parameters, merged over the scenario's own 'params'.",
    )
    replay.add_argument("--quiet", action="store_true", help="Only report failed steps and the final report.")

    tree = sub.add_parser("tree", help="Passport score Merkle trees.")
    tree_sub = tree.add_subparsers(dest="tree_command", required=True)

    build = tree_sub.add_parser("build", help="Build a score tree from a JSON list of scores.")
    build.add_argument("scores", type=Path, help="JSON file: [{account, protocol, score}, ...].")
    build.add_argument("--out", type=Path, default=None, help="Write the tree dump (root + proofs) here.")

    fetch = tree_sub.add_parser("fetch", help="Fetch a published score tree dump from IPFS.")
    fetch.add_argument("cid", help="IPFS CID of the score tree dump.")
    fetch.add_argument(
        "--gateways",
        default=None,
        help="Comma-separated IPFS gateways. Default: CREDIT_VAULTS_IPFS_GATEWAYS or built-in list.",
    )
    fetch.add_argument("--expected-root", default=None, help="Warn if the dump's root differs from this one.")
    fetch.add_argument(
        "--no-cache",
        action="store_true",
        help="Disable caching for this run (fetch data fresh from network).",
    )
    return p.parse_args(argv)


def _load_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _print_issues(title: str, issues: list[str]) -> None:
    if issues:
        print(f"⚠️  {title}:", file=sys.stderr)
        for issue in issues:
            print(f"   {issue}", file=sys.stderr)


def run_replay(args: argparse.Namespace) -> int:
    try:
        data = _load_json(args.scenario)
        if args.params is not None:
            data = {**data, "params": {**(data.get("params") or {}), **_load_json(args.params)}}
        scenario = load_scenario(data)
        runner = ScenarioRunner(scenario)
    except (OSError, ValueError, KeyError) as ex:
        print(f"Error: cannot load scenario {args.scenario}: {ex}", file=sys.stderr)
        return 2

    decimals = scenario.params.collateral_decimals
    failed = 0
    with tqdm(runner.run(), total=len(scenario.steps), desc="▶️  Replaying", unit="step", file=sys.stderr) as pbar:
        for result in pbar:
            pbar.set_postfix(t=result.timestamp)
            label = f"#{result.index} t={result.timestamp} {result.action} {result.account}".rstrip()
            if not result.ok:
                failed += 1
                tqdm.write(f"❌ {label}: {result.error}", file=sys.stderr)
            elif not args.quiet:
                note = result.error or describe_details(result.details, collateral_decimals=decimals)
                tqdm.write(f"✅ {label}: {note}", file=sys.stderr)

    ledger = runner.ledger
    _print_issues(
        "Ledger consistency warnings",
        validate_ledger_totals(
            ledger.vaults.values(),
            total_collateral=ledger.total_collateral,
            total_normalized_borrowed=ledger.total_normalized_borrowed,
        ),
    )
    print_ledger_report(ledger)

    if failed:
        print(f"\n❌ {failed} of {len(scenario.steps)} step(s) failed.", file=sys.stderr)
        return 1
    return 0


def run_tree_build(args: argparse.Namespace) -> int:
    try:
        tree = PassportScoreTree(parse_scores(_load_json(args.scores)))
    except (OSError, ValueError, KeyError, TypeError) as ex:
        print(f"Error: cannot build score tree from {args.scores}: {ex}", file=sys.stderr)
        return 2

    dump = tree.to_dump()
    if args.out is not None:
        with args.out.open("w", encoding="utf-8") as f:
            json.dump(dump, f, indent=2)
        print(f"✅ Wrote score tree dump to {args.out}", file=sys.stderr)

    root, proofs = parse_score_tree_dump(dump)
    print_score_tree(root, proofs)
    return 0


def run_tree_fetch(args: argparse.Namespace) -> int:
    gateways = resolve_gateways(args.gateways)
    try:
        dump = fetch_score_tree(args.cid, gateways, timeout_s=DEFAULT_TIMEOUT, use_cache=not args.no_cache)
    except RuntimeError as ex:
        print(f"Error: {ex}", file=sys.stderr)
        return 2

    _print_issues(
        "Score tree warnings",
        validate_score_tree_dump(dump, expected_root=args.expected_root, warn_only=True),
    )
    try:
        root, proofs = parse_score_tree_dump(dump)
    except (ValueError, KeyError) as ex:
        print(f"Error: unexpected score tree dump: {ex}", file=sys.stderr)
        return 2
    print_score_tree(root, proofs)
    return 0


def main(argv: list[str]) -> int:
    """Main entry point."""
    args = parse_args(argv)
    if args.command == "replay":
        return run_replay(args)
    if args.tree_command == "build":
        return run_tree_build(args)
    return run_tree_fetch(args)


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
