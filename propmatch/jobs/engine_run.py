from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Any, Callable

from propmatch.core.config import DedupeSettings
from propmatch.core.dedupe import find_duplicates
from propmatch.core.events import append_events, detect_events
from propmatch.core.normalize import property_from_record, property_to_record
from propmatch.core.opportunity import snapshot_opportunity_scores
from propmatch.core.supabase_repo import SupabaseRepo
from propmatch.core.timeutil import utcnow


logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
LOGGER = logging.getLogger(__name__)


def run_dedup_pass(repo: Any, tenant_id: str | None = None, settings: DedupeSettings | None = None) -> dict[str, int]:
    settings = settings or DedupeSettings.from_env()
    now = utcnow()
    rows = _load_with_retry(lambda: repo.get_canonical_properties(tenant_id), label="properties")
    pool = [property_from_record(row) for row in rows]
    previous_by_id = {record.id: record for record in pool}
    LOGGER.info("Dedup pass tenant=%s pool=%s", tenant_id or "*", len(pool))

    result = find_duplicates(pool, settings=settings, now=now)

    written = 0
    merged_ids = set(result.absorbed.values())
    for record in result.properties:
        if record.id not in merged_ids:
            continue
        previous = previous_by_id.get(record.id)
        record = append_events(record, detect_events(record, previous, now=now))
        repo.upsert_canonical_property(property_to_record(record))
        written += 1

    for absorbed_id, into_id in result.absorbed.items():
        repo.mark_property_merged(absorbed_id, into_id)

    repo.insert_merge_reviews(
        [
            {
                "property_id": review.property_id,
                "candidate_id": review.candidate_id,
                "probability": review.probability,
                "created_at": now.isoformat(),
            }
            for review in result.reviews
        ]
    )
    LOGGER.info(
        "Dedup pass completed. merged=%s written=%s reviews=%s",
        len(result.absorbed),
        written,
        len(result.reviews),
    )
    return {"pool": len(pool), "merged": len(result.absorbed), "written": written, "reviews": len(result.reviews)}


def run_score_pass(repo: Any, tenant_id: str | None = None) -> dict[str, int]:
    now = utcnow()
    rows = _load_with_retry(lambda: repo.get_canonical_properties(tenant_id), label="properties")
    updated = 0
    for row in rows:
        scored = snapshot_opportunity_scores(property_from_record(row), now=now)
        repo.update_property_scores(
            scored.id,
            {
                "angaria_score": scored.angaria_score,
                "venda_score": scored.venda_score,
                "updated_at": now.isoformat(),
            },
        )
        updated += 1
    LOGGER.info("Score pass completed. tenant=%s updated=%s", tenant_id or "*", updated)
    return {"processed": len(rows), "updated": updated}


def main(argv: list[str] | None = None, repo_factory: Callable[[], Any] = SupabaseRepo) -> int:
    parser = argparse.ArgumentParser(description="Run dedup and opportunity scoring passes.")
    parser.add_argument("--pass", dest="pass_name", choices=["dedupe", "score", "all"], default="all")
    parser.add_argument("--tenant", default=None, help="Restrict the pass to a single tenant id.")
    args = parser.parse_args(argv)

    repo = repo_factory()
    passes: list[tuple[str, Callable[[], Any]]] = []
    if args.pass_name in {"dedupe", "all"}:
        passes.append(("dedupe", lambda: run_dedup_pass(repo, args.tenant)))
    if args.pass_name in {"score", "all"}:
        passes.append(("score", lambda: run_score_pass(repo, args.tenant)))

    failed = False
    for name, run in passes:
        try:
            run()
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Pass %s failed: %s", name, exc)
            failed = True
    return 1 if failed else 0


def _load_with_retry(load_func: Callable[[], list[dict[str, Any]]], label: str, max_attempts: int = 3) -> list[dict[str, Any]]:
    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            result = load_func()
            return result if isinstance(result, list) else []
        except Exception as exc:  # noqa: BLE001
            last_error = exc
            if attempt >= max_attempts:
                break
            wait_seconds = attempt * 2
            LOGGER.warning(
                "Load retry target=%s attempt=%s/%s wait=%ss error=%s",
                label,
                attempt,
                max_attempts,
                wait_seconds,
                exc,
            )
            time.sleep(wait_seconds)
    if last_error:
        raise last_error
    return []


if __name__ == "__main__":
    sys.exit(main())
