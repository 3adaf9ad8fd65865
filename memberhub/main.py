"""
memberhub - Main entry point.

Runs the access-control core against the development seed data and prints
what each subject can see. Useful for checking an installation.

Try the API: uvicorn memberhub.api.app:app --reload
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from memberhub.access.errors import AccessError
from memberhub.access.guard import allowed_tabs
from memberhub.access.runtime import create_runtime
from memberhub.config import Settings

SEED_FILE = Path(__file__).parent.parent / "config" / "seed.yaml"

DEMO_SUBJECTS = ["user_admin", "user_jsmith", "user_ann", "user_retired", "user_nobody"]


async def demo(seed_file: Path = SEED_FILE) -> dict[str, str]:
    """
    Resolve every demo subject, reconcile the secondary store and print
    the results.

    Returns:
        subject_id -> resolved role value
    """
    print("=" * 60)
    print("MEMBERHUB ACCESS DEMO")
    print("=" * 60)
    print()

    runtime = create_runtime(Settings(seed_file=str(seed_file)), single_identity=True)
    await runtime.startup()

    print("Resolved roles:")
    roles: dict[str, str] = {}
    for subject_id in DEMO_SUBJECTS:
        await runtime.session.sign_in(subject_id)
        try:
            role = await runtime.cache.get(subject_id)
        except AccessError as e:
            print(f"  ✗ {subject_id}: undetermined ({e.message})")
            continue
        roles[subject_id] = role.value
        tabs = ", ".join(t.value for t in allowed_tabs(role)) or "no tabs"
        print(f"  • {subject_id}: {role.value} ({tabs})")
    print()

    print("Reconciling secondary role store...")
    await runtime.coordinator.trigger(DEMO_SUBJECTS)
    await runtime.coordinator.join()
    for status, count in runtime.coordinator.summary().items():
        print(f"  • {status}: {count}")
    print()

    events = runtime.event_bus.get_history()
    print(f"Event history ({len(events)} events):")
    for event in events[-5:]:
        print(f"  • {event.event_type} {event.subject_id or ''}")
    print()

    await runtime.shutdown()
    print("=" * 60)
    return roles


def main():
    """Main entry point."""
    asyncio.run(demo())


if __name__ == "__main__":
    main()
