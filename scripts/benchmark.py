#!/usr/bin/env python3
"""
Derivable Performance Benchmarks

Times how long the calculation engine needs to settle for a few typical model
shapes, growing the workload until one run takes longer than the time limit.

Scenarios:
- Derive chain: one model with N attributes, each derived from the previous one
- Nested models: N parent models, each recalculating after its nested model changed
- Collection churn: N members added to, edited in and removed from a nested collection

Usage:
    python scripts/benchmark.py            # Run all benchmarks
    python scripts/benchmark.py --config   # Show current benchmark configuration
    python scripts/benchmark.py --quiet    # Only show the final table
"""

import argparse
import asyncio
import sys
import time
from typing import Any, Callable, Dict, Type

# Add the project root to the Python path
sys.path.insert(0, ".")

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from derivable import (
    CollectionAttribute,
    Model,
    ModelAttribute,
    NumberAttribute,
)

# Configuration constants - adjust these to change benchmark behavior
TIME_LIMIT_SECONDS = 0.5  # Stop scaling once a run takes this long
STARTING_N = 10  # Workload of the first run
SCALE_FACTOR = 1.5  # How much to multiply N by each iteration


def _chain_model(n: int) -> Type[Model]:
    """Build a model class with ``n`` attributes, each deriving from the previous."""
    namespace: Dict[str, Any] = {"max_calculations": n + 10, "step_0": NumberAttribute}
    for i in range(1, n + 1):
        namespace[f"step_{i}"] = NumberAttribute.declare(
            derive=lambda attr, i=i: attr.model.get(f"step_{i - 1}") + 1
        )
    return type(f"Chain{n}", (Model,), namespace)


class Leaf(Model):
    value = NumberAttribute
    doubled = NumberAttribute.declare(derive=lambda attr: attr.model.get("value") * 2)


class Branch(Model):
    leaf = ModelAttribute.of(Leaf)
    total = NumberAttribute.declare(derive=lambda attr: attr.model.get("leaf").get("doubled"))


class Basket(Model):
    leaves = CollectionAttribute.of(Leaf)
    total = NumberAttribute.declare(
        derive=lambda attr: sum(leaf.get("doubled") for leaf in attr.model.get("leaves"))
    )


async def _settle_chain(n: int) -> float:
    model = _chain_model(n)()
    await model.ready()

    start_time = time.perf_counter()
    model.set("step_0", 1)
    await model.ready()
    elapsed = time.perf_counter() - start_time

    assert model.get(f"step_{n}") == n + 1
    return elapsed


async def _settle_nested(n: int) -> float:
    branches = [Branch() for _ in range(n)]
    await asyncio.gather(*(branch.ready() for branch in branches))

    start_time = time.perf_counter()
    for i, branch in enumerate(branches):
        branch.get("leaf").set("value", i)
    await asyncio.gather(*(branch.ready() for branch in branches))
    elapsed = time.perf_counter() - start_time

    assert branches[-1].get("total") == (n - 1) * 2
    return elapsed


async def _settle_churn(n: int) -> float:
    basket = Basket()
    await basket.ready()
    leaves = basket.get("leaves")

    start_time = time.perf_counter()
    leaves.add([{"value": i} for i in range(n)])
    await basket.ready()
    for leaf in leaves:
        leaf.set("value", leaf.get("value") + 1)
    await basket.ready()
    leaves.remove(list(leaves)[: n // 2])
    await basket.ready()
    elapsed = time.perf_counter() - start_time

    assert len(leaves) == n - n // 2
    return elapsed


class DerivableBenchmark:
    """Rich-formatted runner for the calculation engine benchmarks."""

    def __init__(self, quiet: bool = False):
        self.console = Console()
        self.quiet = quiet
        self.results: Dict[str, Dict[str, Any]] = {}

    def run_benchmarks(self):
        """Run every scenario and display the results."""
        start_time = time.time()
        self._display_header()

        self._run("Derive Chain", "links", _settle_chain)
        self._run("Nested Models", "models", _settle_nested)
        self._run("Collection Churn", "members", _settle_churn)

        self._display_final_results(start_time)

    def _run(self, name: str, unit: str, scenario: Callable[[int], Any]):
        if not self.quiet:
            self.console.print(f"[yellow]Running {name} benchmark...[/yellow]")

        result = self._run_adaptive_benchmark(scenario)
        result["unit"] = unit
        self.results[name] = result

        if not self.quiet:
            self.console.print(
                f"[green]✓[/green] {name}: {result['operations_per_second']:,.0f} "
                f"{unit}/sec ({result['max_n']} {unit})"
            )

    def _run_adaptive_benchmark(self, scenario: Callable[[int], Any]) -> Dict[str, Any]:
        """Grow the workload until a single run reaches the time limit."""
        n = STARTING_N
        while True:
            operation_time = asyncio.run(scenario(n))
            result = {
                "max_n": n,
                "operation_time": operation_time,
                "operations_per_second": n / max(operation_time, 1e-9),
            }
            if operation_time >= TIME_LIMIT_SECONDS:
                return result
            n = int(n * SCALE_FACTOR) + 1

    def _display_header(self):
        header = Panel(
            Align.center("Derivable Calculation Engine Benchmarks"),
            title="Derivable Benchmarks",
            border_style="blue",
        )
        self.console.print(header)
        self.console.print()

    def _display_final_results(self, start_time: float):
        elapsed = time.time() - start_time

        table = Table(title="Final Benchmark Results")
        table.add_column("Benchmark", style="cyan", no_wrap=True)
        table.add_column("Max Workload", style="magenta")
        table.add_column("Settle Time", style="green", justify="right")
        table.add_column("Throughput", style="yellow", justify="right")

        for name, result in self.results.items():
            table.add_row(
                name,
                f"{result['max_n']:,} {result['unit']}",
                f"{result['operation_time'] * 1000:.1f} ms",
                f"{result['operations_per_second']:,.0f} {result['unit']}/sec",
            )

        self.console.print()
        self.console.print(table)
        self.console.print()
        self.console.print(f"[dim]Benchmark completed in {elapsed:.2f} seconds[/dim]")


def print_config():
    """Print the current benchmark configuration."""
    print("Derivable Benchmark Configuration:")
    print(f"  TIME_LIMIT_SECONDS: {TIME_LIMIT_SECONDS}")
    print(f"  STARTING_N: {STARTING_N}")
    print(f"  SCALE_FACTOR: {SCALE_FACTOR}")


def main():
    """Main entry point for the benchmark script."""
    parser = argparse.ArgumentParser(description="Derivable Performance Benchmarks")
    parser.add_argument(
        "--config", action="store_true", help="Show current benchmark configuration"
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress progress output, show only final results",
    )

    args = parser.parse_args()

    if args.config:
        print_config()
        return

    if not args.quiet:
        print_config()
        print()

    DerivableBenchmark(quiet=args.quiet).run_benchmarks()


if __name__ == "__main__":
    main()
