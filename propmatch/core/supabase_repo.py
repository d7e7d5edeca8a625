from __future__ import annotations

import os
from typing import Any

from supabase import Client, create_client


PROPERTIES_TABLE = "properties"
MERGE_REVIEWS_TABLE = "merge_reviews"
PROPERTY_PAGE_SIZE = 1000


class SupabaseRepo:
    """
    Persistence collaborator for the engine passes. The engines never call this
    directly; jobs load a pool snapshot here and write results back.
    """

    def __init__(
        self,
        url: str | None = None,
        service_role_key: str | None = None,
        client: Client | None = None,
    ) -> None:
        if client is None:
            client = create_client(*_credentials(url, service_role_key))
        self.client = client
        self._review_on_conflict_supported: bool | None = None

    def get_canonical_properties(self, tenant_id: str | None = None) -> list[dict[str, Any]]:
        """Unmerged properties, oldest first, read in pages."""
        out: list[dict[str, Any]] = []
        offset = 0
        while True:
            query = self.client.table(PROPERTIES_TABLE).select("*").is_("merged_into_id", "null")
            if tenant_id:
                query = query.eq("tenant_id", tenant_id)
            rows = query.order("created_at").range(offset, offset + PROPERTY_PAGE_SIZE - 1).execute().data or []
            out.extend(rows)
            if len(rows) < PROPERTY_PAGE_SIZE:
                break
            offset += len(rows)
        return out

    def upsert_canonical_property(self, record: dict[str, Any]) -> dict[str, Any]:
        response = self.client.table(PROPERTIES_TABLE).upsert(record, on_conflict="id").execute()
        return (response.data or [{}])[0]

    def mark_property_merged(self, absorbed_id: str, into_id: str) -> None:
        # Absorbed records are kept for provenance, only flagged.
        self.client.table(PROPERTIES_TABLE).update({"merged_into_id": into_id}).eq("id", absorbed_id).execute()

    def insert_merge_reviews(self, rows: list[dict[str, Any]]) -> None:
        """
        Upsert on (property_id, candidate_id) when the unique index exists,
        plain insert otherwise.
        """
        if not rows:
            return
        if self._review_on_conflict_supported is not False:
            try:
                self.client.table(MERGE_REVIEWS_TABLE).upsert(rows, on_conflict="property_id,candidate_id").execute()
                self._review_on_conflict_supported = True
                return
            except Exception as exc:
                # Postgres 42P10: on_conflict columns do not match a unique/exclusion constraint.
                if "42P10" not in str(exc):
                    raise
                self._review_on_conflict_supported = False
        self.client.table(MERGE_REVIEWS_TABLE).insert(rows).execute()

    def update_property_scores(self, property_id: str, fields: dict[str, Any]) -> None:
        self.client.table(PROPERTIES_TABLE).update(fields).eq("id", property_id).execute()


def _credentials(url: str | None, service_role_key: str | None) -> tuple[str, str]:
    supabase_url = url or os.environ.get("SUPABASE_URL")
    supabase_key = service_role_key or os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
    if not supabase_url or not supabase_key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required.")
    return supabase_url, supabase_key
