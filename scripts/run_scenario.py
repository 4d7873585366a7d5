#!/usr/bin/env python3
"""
End-to-end shortage scenario against the in-memory store.

Raises a critical O- shortage, alerts nearby donors, lets two of them accept,
selects the best match and confirms arrival. No Supabase or webhook needed;
set GROQ_API_KEY to let the agents reason, otherwise rules decide.

Usage:
    python scripts/run_scenario.py
"""

import logging
import os
from datetime import date, timedelta

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from agents.config import AgentConfig
from agents.nodes import coordinator, hospital
from agents.runtime import build_context
from haemo_core.domain import Donor, Hospital, InventoryUnit, utcnow
from haemo_core.store.memory import memory_repositories
from haemo_core.utils.reasoning import build_reasoning_client

console = Console()

CITY_LAT, CITY_LNG = 12.9716, 77.5946


def seed(ctx) -> None:
    ctx.repos.hospitals.add(Hospital(
        id="H001", name="City General Hospital", contact_person="Dr. Rao",
        phone="+91 80 4000 1000", latitude=CITY_LAT, longitude=CITY_LNG,
    ))
    ctx.repos.hospitals.add(Hospital(
        id="H002", name="Northside Blood Bank", latitude=CITY_LAT + 0.045, longitude=CITY_LNG,
    ))
    ctx.repos.inventory.add(InventoryUnit(
        hospital_id="H002", blood_type="O-", units=4, expiry_date=utcnow() + timedelta(days=12),
    ))

    donors = [
        ("D001", "Asha", "O-", 0.01),
        ("D002", "Ravi", "O-", 0.04),
        ("D003", "Meera", "O-", 0.12),
        ("D004", "Kiran", "A+", 0.02),
    ]
    for donor_id, name, blood_group, offset in donors:
        ctx.repos.donors.add(Donor(
            id=donor_id, first_name=name, last_name="Demo", blood_group=blood_group,
            gender="male", date_of_birth=date(1990, 5, 1), weight=70, bmi=22.8, hemoglobin=14.2,
            latitude=CITY_LAT + offset, longitude=CITY_LNG, status="approved",
        ))


def show_candidates(ctx, request_id: str) -> None:
    table = Table(title="Alerted Donors", show_header=True)
    table.add_column("Donor", style="cyan")
    table.add_column("Distance (km)", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Status", style="green")

    for response in ctx.repos.responses.list_for_request(request_id):
        table.add_row(
            response.donor_id,
            f"{response.distance_km:.1f}",
            f"{response.score or 0:.1f}",
            response.status,
        )
    console.print(table)


def show_decisions(ctx, request_id: str) -> None:
    table = Table(title="Agent Decisions", show_header=True)
    table.add_column("Agent", style="cyan")
    table.add_column("Event")
    table.add_column("Source")
    table.add_column("Confidence", justify="right")

    for decision in ctx.repos.decisions.query(request_id=request_id):
        table.add_row(
            decision.agent_type.value,
            decision.event_type,
            decision.decision.source,
            f"{decision.confidence:.2f}",
        )
    console.print(table)


def main():
    load_dotenv()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING"))

    AgentConfig.validate()
    reasoning = build_reasoning_client(AgentConfig.GROQ_API_KEY, model=AgentConfig.DEFAULT_LLM_MODEL)
    ctx = build_context(memory_repositories(), reasoning=reasoning)
    seed(ctx)

    console.print(Panel.fit("[bold red]Critical O- shortage at City General Hospital[/bold red]", border_style="red"))
    outcome = hospital.process_stock_alert(ctx, hospital.StockAlert(hospital_id="H001", blood_type="O-", current_units=0))
    request = outcome.request
    console.print(f"Request {request.id}: {request.units_needed} units, urgency {request.urgency}, "
                  f"priority {request.priority_score}, radius {request.search_radius_km:g} km")

    ctx.tasks.drain()
    show_candidates(ctx, request.id)

    for donor_id in ("D002", "D001"):
        token = ctx.repos.responses.find(request.id, donor_id).token
        result = coordinator.respond_to_notification(ctx, token, "accept")
        console.print(f"[green]{donor_id}[/green]: {result.message}")
    ctx.tasks.drain()

    workflow = ctx.repos.workflows.get(request.id)
    selected = workflow.metadata["matched_donor_id"]
    console.print(Panel(
        f"Selected donor [bold]{selected}[/bold]\n"
        f"Reserved inventory: {workflow.metadata.get('inventory_plan') or 'none'}",
        title="[bold green]Match[/bold green]",
        border_style="green",
    ))

    coordinator.confirm_arrival(ctx, request.id, selected)
    console.print(f"Request status: [bold]{ctx.repos.requests.get(request.id).status}[/bold]")

    show_decisions(ctx, request.id)


if __name__ == "__main__":
    main()
