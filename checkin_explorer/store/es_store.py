import asyncio
import logging
import time
from typing import List

from elasticsearch import ApiError, AsyncElasticsearch, TransportError
from elasticsearch.helpers import ScanError, async_scan

from checkin_explorer.core.config import settings
from checkin_explorer.core.errors import UpstreamUnavailable
from checkin_explorer.models import CheckIn
from checkin_explorer.store.base import CheckInQuery, CheckInStore, Ordering

logger = logging.getLogger(__name__)

# Expected index mapping:
#   user_id: integer, location_id: integer, location: geo_point, timestamp: date
TIE_BREAKERS = [{"user_id": "asc"}, {"location_id": "asc"}]
# Only the fields _parse_hit reads
SOURCE_FIELDS = ["user_id", "location_id", "location", "timestamp"]


class ElasticsearchCheckInStore(CheckInStore):
    name = "elasticsearch"

    def __init__(self):
        self.client = AsyncElasticsearch(
            settings.ES_HOST, request_timeout=settings.ES_REQUEST_TIMEOUT
        )
        self.index = settings.ES_INDEX

    async def query(self, query: CheckInQuery) -> List[CheckIn]:
        es_query = self._build_query(query)
        sort = self._build_sort(query)
        start = time.perf_counter()
        try:
            if query.limit is None:
                hits = await self._scan_all(es_query, sort)
            else:
                resp = await self.client.search(
                    index=self.index,
                    query=es_query,
                    sort=sort or None,
                    size=query.limit,
                    source=SOURCE_FIELDS,
                )
                hits = resp["hits"]["hits"]
        except (ApiError, TransportError, ScanError, asyncio.TimeoutError) as e:
            logger.error(f"ES query error on index {self.index}: {e}")
            raise UpstreamUnavailable("check-in store query failed") from e

        results = [self._parse_hit(hit) for hit in hits]
        duration_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            f"Executed query {es_query} in {duration_ms:.1f}ms, rows={len(results)}"
        )
        return results

    async def distinct_user_ids(self, limit: int) -> List[int]:
        return await self._distinct("user_id", limit)

    async def distinct_location_ids(self, limit: int) -> List[int]:
        return await self._distinct("location_id", limit)

    async def close(self) -> None:
        await self.client.close()

    async def _scan_all(self, es_query, sort):
        body = {"query": es_query, "_source": SOURCE_FIELDS}
        if sort:
            body["sort"] = sort
        return [
            hit
            async for hit in async_scan(
                self.client,
                index=self.index,
                query=body,
                preserve_order=bool(sort),
            )
        ]

    async def _distinct(self, field: str, limit: int) -> List[int]:
        try:
            resp = await self.client.search(
                index=self.index,
                size=0,
                aggs={
                    "ids": {
                        "terms": {
                            "field": field,
                            "size": limit,
                            "order": {"_key": "asc"},
                        }
                    }
                },
            )
        except (ApiError, TransportError, asyncio.TimeoutError) as e:
            logger.error(f"ES aggregation error on {field}: {e}")
            raise UpstreamUnavailable("check-in store query failed") from e
        return [int(b["key"]) for b in resp["aggregations"]["ids"]["buckets"]]

    def _build_query(self, q: CheckInQuery) -> dict:
        filter_clauses = []
        must_not_clauses = []

        if q.user_id is not None:
            filter_clauses.append({"term": {"user_id": q.user_id}})
        if q.exclude_user_id is not None:
            must_not_clauses.append({"term": {"user_id": q.exclude_user_id}})
        if q.location_id is not None:
            filter_clauses.append({"term": {"location_id": q.location_id}})

        if q.start_time is not None or q.end_time is not None:
            time_range = {}
            if q.start_time is not None:
                time_range["gte"] = q.start_time.isoformat()
            if q.end_time is not None:
                time_range["lte"] = q.end_time.isoformat()
            filter_clauses.append({"range": {"timestamp": time_range}})

        if q.bounds is not None:
            # ES wraps the box across the antimeridian when west > east
            filter_clauses.append(
                {
                    "geo_bounding_box": {
                        "location": {
                            "top_left": {"lat": q.bounds.north, "lon": q.bounds.west},
                            "bottom_right": {
                                "lat": q.bounds.south,
                                "lon": q.bounds.east,
                            },
                        }
                    }
                }
            )

        if q.near is not None:
            filter_clauses.append(
                {
                    "geo_distance": {
                        "distance": f"{q.near.radius_km}km",
                        "distance_type": "arc",
                        "location": {"lat": q.near.latitude, "lon": q.near.longitude},
                    }
                }
            )

        bool_query = {"filter": filter_clauses}
        if must_not_clauses:
            bool_query["must_not"] = must_not_clauses
        return {"bool": bool_query}

    def _build_sort(self, q: CheckInQuery) -> list:
        if q.order is Ordering.NONE:
            return []
        if q.order is Ordering.TIME_ASC:
            return [{"timestamp": "asc"}] + TIE_BREAKERS
        if q.order is Ordering.TIME_DESC:
            return [{"timestamp": "desc"}] + TIE_BREAKERS

        ref_lat, ref_lng = q.reference
        return [
            {
                "_geo_distance": {
                    "location": {"lat": ref_lat, "lon": ref_lng},
                    "order": "asc" if q.order is Ordering.DISTANCE_ASC else "desc",
                    "unit": "km",
                    "distance_type": "arc",
                }
            },
            {"timestamp": "desc"},
        ] + TIE_BREAKERS

    def _parse_hit(self, hit) -> CheckIn:
        source = hit["_source"]
        return CheckIn(
            user_id=source["user_id"],
            location_id=source["location_id"],
            latitude=source["location"]["lat"],
            longitude=source["location"]["lon"],
            timestamp=source["timestamp"],
        )
