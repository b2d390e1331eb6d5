"""
sample_data.py — Seeded synthetic transaction batch for demos and tests.

Every scenario the engine knows about is planted once in otherwise random
background traffic:

====================  ==========================================  ==========
Scenario              Accounts                                    Expected
====================  ==========================================  ==========
3-, 4-, 5-cycles      MULE_A*, MULE_B*, MULE_C*                   cycle
Fan-in hub            SMURF_S* → SMURF_HUB_IN → SMURF_EXIT        smurfing
Fan-out hub           SMURF_FEEDER → SMURF_HUB_OUT → SMURF_R*     smurfing
Shell chain           SHELL_SRC → SHELL_P01..P03 → SHELL_SINK     layering
Retail merchant       CUST_* → MERCHANT_STORE                     suppressed
Payroll               EMPLOYER_PAYROLL → EMP_*                    suppressed
====================  ==========================================  ==========
"""

from __future__ import annotations

import random
import pandas as pd
from datetime import datetime, timedelta
from typing import Dict, List

BASE_TIME = datetime(2025, 6, 1, 8, 0, 0)
CSV_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class _Ledger:
    """Accumulates string-typed CSV rows with sequential transaction ids."""

    def __init__(self):
        self.rows: List[Dict[str, str]] = []

    def add(self, sender: str, receiver: str, amount: float, when: datetime) -> None:
        self.rows.append({
            "transaction_id": f"TXN_{len(self.rows) + 1:05d}",
            "sender_id": sender,
            "receiver_id": receiver,
            "amount": f"{amount:.2f}",
            "timestamp": when.strftime(CSV_TIMESTAMP_FORMAT),
        })


def generate_sample_csv(n_normal: int = 300, seed: int = 42) -> pd.DataFrame:
    """Generate a sample transaction DataFrame with embedded fraud patterns.

    Parameters
    ----------
    n_normal : int
        Number of background transactions between ordinary accounts.
    seed : int
        Random seed; the same seed always yields the same frame.

    Returns
    -------
    pd.DataFrame
        Raw string-typed frame (the shape ``validation.validate_csv``
        expects) with columns transaction_id, sender_id, receiver_id,
        amount, timestamp.
    """
    rng = random.Random(seed)
    ledger = _Ledger()

    _add_background(ledger, rng, n_normal)

    _add_cycle(ledger, ["MULE_A01", "MULE_A02", "MULE_A03"],
               start=BASE_TIME + timedelta(days=5, hours=2), amount=4500.0, gap_hours=1)
    # Second lap through the same loop later that day
    _add_cycle(ledger, ["MULE_A01", "MULE_A02", "MULE_A03"],
               start=BASE_TIME + timedelta(days=5, hours=11), amount=4200.0, gap_hours=2)
    _add_cycle(ledger, ["MULE_B01", "MULE_B02", "MULE_B03", "MULE_B04"],
               start=BASE_TIME + timedelta(days=10, hours=14), amount=3800.0, gap_hours=3)
    _add_cycle(ledger, [f"MULE_C{i:02d}" for i in range(1, 6)],
               start=BASE_TIME + timedelta(days=20, hours=9), amount=6000.0, gap_hours=2)

    _add_fan_in(ledger, rng, start=BASE_TIME + timedelta(days=15, hours=10))
    _add_fan_out(ledger, rng, start=BASE_TIME + timedelta(days=18, hours=14))
    _add_shell_chain(ledger, rng, start=BASE_TIME + timedelta(days=25, hours=11))
    _add_merchant(ledger, rng, start=BASE_TIME + timedelta(days=2))
    _add_payroll(ledger, rng, first_payday=BASE_TIME + timedelta(days=1, hours=9))

    # Shuffle so the planted scenarios are not contiguous in the file
    return pd.DataFrame(ledger.rows).sample(frac=1, random_state=seed).reset_index(drop=True)


def sample_csv_text() -> str:
    """Return the sample data as CSV text (API / CLI input format)."""
    return generate_sample_csv().to_csv(index=False)


# ── Scenario builders ────────────────────────────────────────────────────────

def _add_background(ledger: _Ledger, rng: random.Random, count: int) -> None:
    accounts = [f"ACC_{i:04d}" for i in range(1, 81)]
    for _ in range(count):
        sender, receiver = rng.sample(accounts, 2)
        offset = timedelta(days=rng.randint(0, 60), hours=rng.randint(0, 23), minutes=rng.randint(0, 59))
        ledger.add(sender, receiver, round(rng.uniform(10, 5000), 2), BASE_TIME + offset)


def _add_cycle(
    ledger: _Ledger,
    members: List[str],
    start: datetime,
    amount: float,
    gap_hours: int,
) -> None:
    for i, sender in enumerate(members):
        receiver = members[(i + 1) % len(members)]
        ledger.add(sender, receiver, amount, start + timedelta(hours=gap_hours * i))


def _add_fan_in(ledger: _Ledger, rng: random.Random, start: datetime) -> None:
    """12 mules deposit just under $500 each; the hub forwards 95 % onward."""
    when = start
    collected = 0.0
    for i in range(1, 13):
        amount = round(rng.uniform(480, 500), 2)
        collected += amount
        ledger.add(f"SMURF_S{i:02d}", "SMURF_HUB_IN", amount, when)
        when += timedelta(minutes=rng.randint(10, 45))
    ledger.add("SMURF_HUB_IN", "SMURF_EXIT", round(collected * 0.95, 2), when + timedelta(hours=5))


def _add_fan_out(ledger: _Ledger, rng: random.Random, start: datetime) -> None:
    """One funding transfer split across 11 receivers within hours."""
    ledger.add("SMURF_FEEDER", "SMURF_HUB_OUT", 3400.0, start - timedelta(hours=3))
    when = start
    for i in range(1, 12):
        ledger.add("SMURF_HUB_OUT", f"SMURF_R{i:02d}", round(rng.uniform(290, 310), 2), when)
        when += timedelta(minutes=rng.randint(5, 30))


def _add_shell_chain(ledger: _Ledger, rng: random.Random, start: datetime) -> None:
    hops = ["SHELL_SRC", "SHELL_P01", "SHELL_P02", "SHELL_P03", "SHELL_SINK"]
    when = start
    amount = 8000.0
    for sender, receiver in zip(hops, hops[1:]):
        ledger.add(sender, receiver, amount, when)
        amount -= round(rng.uniform(5, 15), 2)  # relay fee
        when += timedelta(hours=rng.randint(1, 4))


def _add_merchant(ledger: _Ledger, rng: random.Random, start: datetime) -> None:
    """240 small, uniform card-style payments from repeat customers."""
    customers = [f"CUST_{i:03d}" for i in range(1, 61)]
    when = start
    for _ in range(240):
        ledger.add(rng.choice(customers), "MERCHANT_STORE", round(rng.uniform(48, 52), 2), when)
        when += timedelta(minutes=rng.randint(20, 240))
    ledger.add("MERCHANT_STORE", "SUPPLIER_01", 9000.0, when)


def _add_payroll(ledger: _Ledger, rng: random.Random, first_payday: datetime) -> None:
    """Fixed monthly salaries for 12 employees over three months."""
    salaries = {f"EMP_{i:03d}": round(rng.uniform(2800, 3200), 2) for i in range(1, 13)}
    for month in range(3):
        when = first_payday + timedelta(days=30 * month)
        for employee, salary in salaries.items():
            ledger.add("EMPLOYER_PAYROLL", employee, salary, when)
            when += timedelta(seconds=rng.randint(1, 10))
