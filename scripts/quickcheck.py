from __future__ import annotations

from datetime import datetime
from pathlib import Path
import traceback

from lab_scheduler import ReservationYamlRepository, SchedulingService


def main() -> int:
    print("[INFO] Lab Scheduler Quick Check")
    print("[INFO] Registering laboratories and users...")

    repo = ReservationYamlRepository("data")
    for index in range(1, 6):
        repo.register_resource(f"Lab-{index}")
    for username in ("alice", "bob", "carol"):
        repo.register_subject(username)

    now = datetime(2026, 2, 24, 10, 0)
    service = SchedulingService(repo, now_provider=lambda: now)
    service.delete_all_reservations()

    generated = service.seed_random_reservations(now=now, seed="quickcheck")
    print(f"[OK] Random reservations generated: {len(generated)}")

    first = service.create_reservation("Lab-1", "alice", datetime(2026, 3, 2, 9, 0), datetime(2026, 3, 2, 11, 0))
    second = service.create_reservation("Lab-1", "bob", datetime(2026, 3, 2, 9, 0), datetime(2026, 3, 2, 11, 0))
    print(f"[OK] Requested slot: {first.resource},{first.start.isoformat(timespec='minutes')}~{first.end.isoformat(timespec='minutes')}")
    print(f"[OK] Deferred slot: {second.resource},{second.start.isoformat(timespec='minutes')}~{second.end.isoformat(timespec='minutes')}")

    divergences = service.lifecycle.find_divergences()
    print(f"[OK] Index divergences: {len(divergences)}")
    print(f"[OK] Stored reservations: {len(service.list_reservations())}")
    print(f"[OK] Reservations YAML: {Path('data/reservations.yaml').resolve()}")
    print(f"[OK] Event Log YAML: {Path('data/reservation_events.yaml').resolve()}")

    print("[DONE] Quick check completed successfully.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Quick check failed.")
        traceback.print_exc()
        raise SystemExit(1)
